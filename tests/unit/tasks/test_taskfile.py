"""Tests for task file parsing, persistence and selection."""
from pathlib import Path

import pytest
import yaml

from taskloop.errors import TaskFileError, TaskStateError
from taskloop.tasks.taskfile import (
    blocked_count,
    load_task_file,
    next_runnable_task,
    parse_task_file,
    runnable_tasks,
    save_task_file,
)
from taskloop.tasks.types import Task, TaskStatus


def _task(task_id: str, **fields) -> dict:
    data = {"id": task_id, "title": f"Task {task_id}", "commit_message": f"Do {task_id}"}
    data.update(fields)
    return data


def test_parse_tasks_list_with_defaults():
    task_file = parse_task_file(
        {
            "version": 1,
            "tasks": [
                _task("t1", verify=["pytest -q"], acceptance=["works"]),
                _task("t2", deps=["t1"], status="done"),
            ],
        }
    )

    first, second = task_file.tasks
    assert not task_file.single
    assert first.status == TaskStatus.TODO
    assert first.verify == ["pytest -q"]
    assert first.acceptance == ["works"]
    assert second.deps == ["t1"]
    assert second.status == TaskStatus.DONE


def test_parse_single_task_form():
    task_file = parse_task_file({"version": 1, "task": _task("only")})
    assert task_file.single
    assert [t.id for t in task_file.tasks] == ["only"]


@pytest.mark.parametrize(
    "data, message",
    [
        ([], "mapping"),
        ({"tasks": []}, "version"),
        ({"version": 1}, "missing 'task' or 'tasks'"),
        ({"version": 1, "task": _task("a"), "tasks": []}, "either"),
        ({"version": 1, "tasks": [_task("a"), _task("a")]}, "duplicate task id"),
        ({"version": 1, "tasks": [_task("a", status="doing")]}, "invalid status"),
        ({"version": 1, "tasks": [_task("a", deps=["zzz"])]}, "non-existent task: zzz"),
        ({"version": 1, "tasks": [_task("a", deps=["a"])]}, "depends on itself"),
        ({"version": 1, "tasks": [_task("a", commit_message="")]}, "commit_message"),
        ({"version": 1, "tasks": [_task("a", verify="make test")]}, "list of strings"),
        ({"version": 1, "tasks": [{"id": "a", "commit_message": "x"}]}, "title"),
        ({"version": 1, "tasks": [_task(True)]}, "id must be a string"),
        ({"version": 1, "tasks": [_task("a", title=False)]}, "title must be a string"),
    ],
)
def test_invalid_task_files(data, message):
    with pytest.raises(TaskFileError, match=message):
        parse_task_file(data)


def test_done_task_may_omit_commit_message():
    task_file = parse_task_file(
        {"version": 1, "tasks": [_task("a", status="done", commit_message="")]}
    )
    assert task_file.tasks[0].status == TaskStatus.DONE


def test_load_reports_malformed_yaml(tmp_path: Path):
    path = tmp_path / "tasks.yaml"
    path.write_text("tasks: [unclosed\n")
    with pytest.raises(TaskFileError, match="Malformed YAML"):
        load_task_file(path)


def test_load_missing_file(tmp_path: Path):
    with pytest.raises(TaskFileError, match="Failed to read"):
        load_task_file(tmp_path / "missing.yaml")


def test_save_preserves_layout_and_extra_keys(tmp_path: Path):
    path = tmp_path / "tasks.yaml"
    path.write_text(
        yaml.safe_dump({"version": 1, "project": "demo", "tasks": [_task("a"), _task("b")]})
    )
    task_file = load_task_file(path)
    task_file.tasks[0].mark(TaskStatus.DONE)

    save_task_file(task_file, path)
    raw = yaml.safe_load(path.read_text())

    assert raw["project"] == "demo"
    assert [t["status"] for t in raw["tasks"]] == ["done", "todo"]
    assert load_task_file(path).tasks[0].status == TaskStatus.DONE


class TestSelection:
    def _tasks(self) -> list[Task]:
        return parse_task_file(
            {
                "version": 1,
                "tasks": [
                    _task("a", status="done"),
                    _task("b", deps=["c"]),
                    _task("c", deps=["a"]),
                    _task("d", status="failed"),
                    _task("e", deps=["d"]),
                ],
            }
        ).tasks

    def test_runnable_respects_deps_and_order(self):
        assert [t.id for t in runnable_tasks(self._tasks())] == ["c"]
        assert next_runnable_task(self._tasks()).id == "c"

    def test_blocked_count(self):
        assert blocked_count(self._tasks()) == 1

    def test_nothing_runnable(self):
        tasks = [Task(id="x", title="X", status=TaskStatus.DONE)]
        assert next_runnable_task(tasks) is None


class TestStatusTransitions:
    def test_todo_to_done_and_failed(self):
        task = Task(id="a", title="A", commit_message="m")
        task.mark(TaskStatus.FAILED)
        assert task.status == TaskStatus.FAILED

    def test_same_status_is_noop(self):
        task = Task(id="a", title="A", status=TaskStatus.DONE)
        task.mark(TaskStatus.DONE)

    @pytest.mark.parametrize(
        "start, target",
        [
            (TaskStatus.DONE, TaskStatus.TODO),
            (TaskStatus.FAILED, TaskStatus.TODO),
            (TaskStatus.FAILED, TaskStatus.DONE),
            (TaskStatus.DONE, TaskStatus.FAILED),
        ],
    )
    def test_illegal_transitions(self, start, target):
        task = Task(id="a", title="A", status=start)
        with pytest.raises(TaskStateError, match="Illegal status transition"):
            task.mark(target)


def test_numeric_id_is_read_as_text():
    task_file = parse_task_file({"version": 1, "tasks": [_task(7)]})
    assert task_file.tasks[0].id == "7"
