"""Resumable run state persisted at ``.taskloop/state/run.json``.

A loadable record on disk is the only signal that a previous run stopped
mid-task. ``active_task_id`` is empty if and only if the run is idle.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from taskloop.artifacts.json_io import read_json_object, write_json_atomic
from taskloop.errors import StateError

logger = logging.getLogger(__name__)

STATE_RELATIVE_PATH = ".taskloop/state/run.json"
STATE_SCHEMA_VERSION = 1


@dataclass
class RunState:
    """Resumability record for one run."""

    run_id: str
    active_task_id: str = ""
    rotation: int = 1
    attempt: int = 1
    backend_name: str = ""
    backend_session_id: str = ""
    last_savepoint_commit: str = ""
    artifact_root_path: str = ""
    version: int = STATE_SCHEMA_VERSION

    @property
    def idle(self) -> bool:
        return not self.active_task_id

    def begin_task(self, task_id: str) -> None:
        self.active_task_id = task_id
        self.rotation = 1
        self.attempt = 1
        self.backend_session_id = ""

    def finish_task(self, savepoint: str) -> None:
        self.last_savepoint_commit = savepoint
        self.active_task_id = ""
        self.backend_session_id = ""
        self.rotation = 1
        self.attempt = 1

    def validate(self) -> None:
        if self.version != STATE_SCHEMA_VERSION:
            raise StateError(
                f"Unsupported run state version {self.version} (expected {STATE_SCHEMA_VERSION})"
            )
        if not self.run_id:
            raise StateError("Run state is missing run_id")
        if self.rotation < 1 or self.attempt < 1:
            raise StateError(
                f"Run state counters out of range: rotation={self.rotation} attempt={self.attempt}"
            )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunState:
        """Parse a state record, rejecting missing, unknown or mistyped fields."""
        expected = {f.name: f.type for f in fields(cls)}
        missing = sorted(set(expected) - set(data))
        if missing:
            raise StateError(f"Run state missing required keys: {missing}")
        unknown = sorted(set(data) - set(expected))
        if unknown:
            raise StateError(f"Run state has unknown keys: {unknown}")
        for name, type_name in expected.items():
            python_type = int if type_name == "int" else str
            value = data[name]
            if type(value) is not python_type:
                raise StateError(
                    f"Run state field {name!r} must be {type_name}, got {type(value).__name__}"
                )
        state = cls(**data)
        state.validate()
        return state


class RunStateStore:
    """Load, save and clear the run state record of one repository."""

    def __init__(self, repo_root: Path) -> None:
        self.path = repo_root / STATE_RELATIVE_PATH

    def load(self) -> tuple[RunState | None, bool]:
        """Return ``(state, True)``, or ``(None, False)`` when no record exists.

        Raises:
            StateError: If the record exists but is malformed
        """
        try:
            payload = read_json_object(self.path)
        except FileNotFoundError:
            return None, False
        except (OSError, json.JSONDecodeError, ValueError) as exc:
            raise StateError(f"Failed to read run state {self.path}: {exc}") from exc
        return RunState.from_dict(payload), True

    def save(self, state: RunState) -> None:
        state.validate()
        try:
            write_json_atomic(self.path, state.to_dict())
        except OSError as exc:
            raise StateError(f"Failed to write run state {self.path}: {exc}") from exc
        logger.debug(
            "saved run state: task=%s rotation=%d attempt=%d",
            state.active_task_id or "-",
            state.rotation,
            state.attempt,
        )

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StateError(f"Failed to remove run state {self.path}: {exc}") from exc
