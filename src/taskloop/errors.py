"""Error taxonomy for the taskloop harness.

Attempt-level failures (``AttemptError`` and subclasses) are recoverable and
feed the retry/rotation state machine. Everything else raised from the engine
is treated as an infrastructure failure and aborts the run immediately.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from taskloop.verify.types import VerifyResult

UNKNOWN_EXIT_CODE = -1


class TaskloopError(RuntimeError):
    """Base class for all harness errors."""


class CancelledError(TaskloopError):
    """Raised when the run's cancel token fires during a blocking call."""

    partial_output: str = ""


class AttemptError(TaskloopError):
    """A single attempt failed; the engine may retry or rotate."""


class VerificationError(AttemptError):
    """A verification command exited non-zero or could not be run."""

    def __init__(
        self,
        *,
        command: str,
        exit_code: int,
        log_path: Path | None,
        cause: BaseException | None,
        results: list[VerifyResult] | None = None,
    ) -> None:
        super().__init__(
            f"verification failed: {command!r} exited {exit_code} (see {log_path}): {cause}"
        )
        self.command = command
        self.exit_code = exit_code
        self.log_path = log_path
        self.cause = cause
        self.results = list(results or [])

    @property
    def cancelled(self) -> bool:
        return isinstance(self.cause, CancelledError)


class BackendError(AttemptError):
    """The agent backend failed to start a session or answer a prompt."""


class TaskFailedError(TaskloopError):
    """Every rotation for a task was exhausted."""

    def __init__(self, task_id: str, rotations: int) -> None:
        super().__init__(f"task {task_id} failed after {rotations} rotations")
        self.task_id = task_id
        self.rotations = rotations


class RunFailedError(TaskloopError):
    """A keep-going run finished with one or more failed tasks."""

    def __init__(self, failed: list[TaskFailedError]) -> None:
        names = ", ".join(f"{item.task_id} ({item.rotations} rotations)" for item in failed)
        super().__init__(f"{len(failed)} task(s) failed: {names}")
        self.failed = list(failed)


class StateError(TaskloopError):
    """The run state record could not be read, validated or written."""


class CheckpointError(TaskloopError):
    """A git savepoint or rollback operation failed."""


class TaskFileError(TaskloopError):
    """The task file is missing, malformed or structurally invalid."""


class TaskStateError(TaskloopError):
    """An illegal task status transition was requested."""


class DirtyTreeError(TaskloopError):
    """A fresh run was requested on a working tree with uncommitted changes."""


class ConfigError(TaskloopError):
    """A configuration file is malformed or has an invalid structure."""
