"""Task model types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from taskloop.errors import TaskStateError


class TaskStatus(str, Enum):
    """Lifecycle status of a task."""

    TODO = "todo"
    DONE = "done"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    TaskStatus.TODO: {TaskStatus.DONE, TaskStatus.FAILED},
    TaskStatus.DONE: set(),
    TaskStatus.FAILED: set(),
}


@dataclass
class Task:
    """One unit of work for the coding agent."""

    id: str
    title: str
    status: TaskStatus = TaskStatus.TODO
    description: str = ""
    acceptance: list[str] = field(default_factory=list)
    verify: list[str] = field(default_factory=list)
    commit_message: str = ""
    deps: list[str] = field(default_factory=list)

    def mark(self, status: TaskStatus) -> None:
        """Move to ``status``; only ``todo -> done`` and ``todo -> failed`` are legal."""
        if status == self.status:
            return
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise TaskStateError(
                f"Illegal status transition for task {self.id}: "
                f"{self.status.value} -> {status.value}"
            )
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
        }
        if self.deps:
            data["deps"] = list(self.deps)
        data["description"] = self.description
        data["acceptance"] = list(self.acceptance)
        data["verify"] = list(self.verify)
        data["commit_message"] = self.commit_message
        return data


@dataclass
class TaskFile:
    """A task file holding either a single ``task`` or a ``tasks`` list."""

    version: int
    tasks: list[Task]
    single: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def find(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"version": self.version}
        if self.single:
            data["task"] = self.tasks[0].to_dict()
        else:
            data["tasks"] = [task.to_dict() for task in self.tasks]
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data
