"""Retry/rotation state machine for executing one task.

Two nested counters drive recovery. Attempts within a rotation reuse the same
agent session so the agent sees its own previous failure. When a rotation is
exhausted the working tree is reset to the last savepoint and the next
rotation starts a brand-new session.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from taskloop.errors import AttemptError, TaskFailedError
from taskloop.tasks.types import TaskStatus

if TYPE_CHECKING:
    from taskloop.git.checkpoint import CheckpointManager
    from taskloop.state.store import RunState, RunStateStore
    from taskloop.tasks.types import Task

logger = logging.getLogger(__name__)


@dataclass
class Attempt:
    """Context handed to the attempt callback.

    ``session_id`` is empty when a fresh agent session is needed; a callback
    that starts one writes the new handle back here so it is persisted.
    """

    task_id: str
    rotation: int
    number: int
    session_id: str = ""
    previous_failure: AttemptError | None = None

    @property
    def is_retry(self) -> bool:
        return self.previous_failure is not None


AttemptFn = Callable[[Attempt], None]


@dataclass(frozen=True)
class ExecutionResult:
    """How a successful execution got there."""

    rotation: int
    attempt: int
    attempts_made: int
    rollbacks: int


class RetryPolicy:
    """Bounded attempts per rotation, bounded rotations per task."""

    def __init__(self, max_attempts: int, max_rotations: int) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        if max_rotations < 1:
            raise ValueError(f"max_rotations must be >= 1, got {max_rotations}")
        self.max_attempts = max_attempts
        self.max_rotations = max_rotations

    def execute(
        self,
        task: Task,
        *,
        state: RunState,
        store: RunStateStore,
        checkpoints: CheckpointManager,
        attempt_fn: AttemptFn,
    ) -> ExecutionResult:
        """Drive ``task`` to success or exhaustion.

        State is persisted after every failed attempt and every rotation
        reset. Only ``AttemptError`` is treated as a recoverable failure; any
        other exception (state I/O, checkpoint, task file) propagates at once
        without consuming a retry.

        Raises:
            TaskFailedError: When all rotations are exhausted; ``task.status``
                is set to ``failed`` first
        """
        if state.active_task_id != task.id:
            state.begin_task(task.id)
            if not state.last_savepoint_commit:
                state.last_savepoint_commit = checkpoints.current_commit()
            store.save(state)
        else:
            logger.info(
                "resuming task %s at rotation %d, attempt %d",
                task.id,
                state.rotation,
                state.attempt,
            )

        attempts_made = 0
        rollbacks = 0
        last_failure: AttemptError | None = None

        while state.rotation <= self.max_rotations:
            while state.attempt <= self.max_attempts:
                logger.info(
                    "attempt: rotation %d/%d, attempt %d/%d",
                    state.rotation,
                    self.max_rotations,
                    state.attempt,
                    self.max_attempts,
                )
                attempt = Attempt(
                    task_id=task.id,
                    rotation=state.rotation,
                    number=state.attempt,
                    session_id=state.backend_session_id,
                    previous_failure=last_failure,
                )
                attempts_made += 1
                try:
                    attempt_fn(attempt)
                except AttemptError as exc:
                    state.backend_session_id = attempt.session_id
                    last_failure = exc
                    logger.warning("attempt failed: %s", exc)
                else:
                    state.backend_session_id = attempt.session_id
                    store.save(state)
                    return ExecutionResult(
                        rotation=state.rotation,
                        attempt=state.attempt,
                        attempts_made=attempts_made,
                        rollbacks=rollbacks,
                    )

                if state.attempt < self.max_attempts:
                    state.attempt += 1
                    store.save(state)
                else:
                    break

            if state.rotation < self.max_rotations:
                state.rotation += 1
                logger.info(
                    "rotation %d exhausted; resetting to savepoint %s",
                    state.rotation - 1,
                    state.last_savepoint_commit,
                )
                checkpoints.rollback(state.last_savepoint_commit)
                rollbacks += 1
                state.attempt = 1
                state.backend_session_id = ""
                store.save(state)
            else:
                break

        task.mark(TaskStatus.FAILED)
        raise TaskFailedError(task.id, self.max_rotations)
