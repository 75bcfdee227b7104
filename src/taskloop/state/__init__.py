"""Run state persistence."""

from taskloop.state.store import STATE_RELATIVE_PATH, RunState, RunStateStore

__all__ = ["RunState", "RunStateStore", "STATE_RELATIVE_PATH"]
