"""Cooperative cancellation shared by every blocking call in a run."""

from __future__ import annotations

import threading
import time

from taskloop.errors import CancelledError


class CancelToken:
    """Explicit cancel flag plus an optional monotonic deadline."""

    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    def cancel(self) -> None:
        self._event.set()

    @property
    def deadline_exceeded(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.deadline_exceeded

    def reason(self) -> str:
        if self._event.is_set():
            return "cancelled"
        if self.deadline_exceeded:
            return "deadline exceeded"
        return ""

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancelledError(self.reason())
