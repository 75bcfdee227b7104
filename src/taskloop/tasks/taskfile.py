"""Task file loading, validation, persistence and selection."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import yaml

from taskloop.errors import TaskFileError
from taskloop.tasks.types import Task, TaskFile, TaskStatus

if TYPE_CHECKING:
    from pathlib import Path

TASK_FILE_RELATIVE_PATH = ".taskloop/tasks.yaml"

_LIST_FIELDS = ("acceptance", "verify", "deps")
_TEXT_FIELDS = ("id", "title", "description", "commit_message")


def load_task_file(path: Path) -> TaskFile:
    """Load and validate a task file.

    Raises:
        TaskFileError: If the file is unreadable, not YAML, or invalid
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TaskFileError(f"Failed to read task file {path}: {exc}") from exc

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise TaskFileError(f"Malformed YAML in task file {path}: {exc}") from exc

    try:
        task_file = parse_task_file(data)
    except TaskFileError as exc:
        raise TaskFileError(f"Invalid task file {path}: {exc}") from exc
    return task_file


def parse_task_file(data: Any) -> TaskFile:
    """Build a validated TaskFile from a parsed YAML document."""
    if not isinstance(data, dict):
        raise TaskFileError("top-level document must be a mapping")

    version = data.get("version")
    if not isinstance(version, int) or isinstance(version, bool) or version < 1:
        raise TaskFileError("version is required and must be a positive integer")

    if "task" in data and "tasks" in data:
        raise TaskFileError("use either 'task' or 'tasks', not both")

    if "task" in data:
        single = True
        raw_tasks = [data["task"]]
    elif "tasks" in data:
        single = False
        raw_tasks = data["tasks"]
        if not isinstance(raw_tasks, list):
            raise TaskFileError("'tasks' must be a list")
    else:
        raise TaskFileError("missing 'task' or 'tasks'")

    tasks = [_parse_task(item, index) for index, item in enumerate(raw_tasks, start=1)]
    extra = {key: value for key, value in data.items() if key not in {"version", "task", "tasks"}}
    task_file = TaskFile(version=version, tasks=tasks, single=single, extra=extra)
    validate_task_file(task_file)
    return task_file


def _parse_task(item: Any, index: int) -> Task:
    if not isinstance(item, dict):
        raise TaskFileError(f"task #{index} must be a mapping")

    values: dict[str, Any] = {}
    for name in _TEXT_FIELDS:
        value = item.get(name, "")
        if value is None:
            value = ""
        if isinstance(value, bool) or not isinstance(value, str | int):
            raise TaskFileError(f"task #{index}: {name} must be a string")
        values[name] = str(value).strip() if name != "description" else str(value)

    for name in _LIST_FIELDS:
        value = item.get(name) or []
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise TaskFileError(f"task #{index}: {name} must be a list of strings")
        values[name] = list(value)

    raw_status = item.get("status", TaskStatus.TODO.value)
    try:
        status = TaskStatus(raw_status)
    except ValueError as exc:
        raise TaskFileError(
            f"invalid status {raw_status!r} for task {values['id'] or f'#{index}'} "
            "(expected: todo, done, failed)"
        ) from exc

    return Task(status=status, **values)


def validate_task_file(task_file: TaskFile) -> None:
    """Check structural invariants of a task file."""
    if task_file.single and len(task_file.tasks) != 1:
        raise TaskFileError("single-task file must contain exactly one task")

    seen: set[str] = set()
    for task in task_file.tasks:
        if not task.id:
            raise TaskFileError("task id is required")
        if task.id in seen:
            raise TaskFileError(f"duplicate task id: {task.id}")
        seen.add(task.id)
        if not task.title:
            raise TaskFileError(f"task {task.id}: title is required")
        if task.status != TaskStatus.DONE and not task.commit_message:
            raise TaskFileError(f"task {task.id}: commit_message is required")

    for task in task_file.tasks:
        for dep in task.deps:
            if dep == task.id:
                raise TaskFileError(f"task {task.id} depends on itself")
            if dep not in seen:
                raise TaskFileError(f"task {task.id} depends on non-existent task: {dep}")


def save_task_file(task_file: TaskFile, path: Path) -> None:
    """Write the task file back in the layout it was loaded with."""
    path.parent.mkdir(parents=True, exist_ok=True)
    text = yaml.safe_dump(task_file.to_dict(), sort_keys=False, allow_unicode=True)
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise TaskFileError(f"Failed to write task file {path}: {exc}") from exc


def runnable_tasks(tasks: list[Task]) -> list[Task]:
    """Tasks in file order whose status is todo and whose deps are all done."""
    status_by_id = {task.id: task.status for task in tasks}
    return [
        task
        for task in tasks
        if task.status == TaskStatus.TODO
        and all(status_by_id.get(dep) == TaskStatus.DONE for dep in task.deps)
    ]


def next_runnable_task(tasks: list[Task]) -> Task | None:
    runnable = runnable_tasks(tasks)
    return runnable[0] if runnable else None


def blocked_count(tasks: list[Task]) -> int:
    """Count todo tasks that can never run because a dependency failed."""
    status_by_id = {task.id: task.status for task in tasks}
    return sum(
        1
        for task in tasks
        if task.status == TaskStatus.TODO
        and any(status_by_id.get(dep) == TaskStatus.FAILED for dep in task.deps)
    )
