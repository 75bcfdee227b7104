"""Task definitions and task file handling."""

from taskloop.tasks.taskfile import (
    TASK_FILE_RELATIVE_PATH,
    blocked_count,
    load_task_file,
    next_runnable_task,
    parse_task_file,
    runnable_tasks,
    save_task_file,
)
from taskloop.tasks.types import Task, TaskFile, TaskStatus

__all__ = [
    "TASK_FILE_RELATIVE_PATH",
    "Task",
    "TaskFile",
    "TaskStatus",
    "blocked_count",
    "load_task_file",
    "next_runnable_task",
    "parse_task_file",
    "runnable_tasks",
    "save_task_file",
]
