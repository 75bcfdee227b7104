"""Agent backends for the taskloop runner."""

from __future__ import annotations

from typing import TYPE_CHECKING

from taskloop.backends.base import AgentBackend, BackendResult, SessionOptions
from taskloop.backends.command import CommandBackend

if TYPE_CHECKING:
    from taskloop.config import Settings

BACKENDS: dict[str, type[CommandBackend]] = {
    "claude": CommandBackend,
    "opencode": CommandBackend,
}


def create_backend(settings: Settings) -> AgentBackend:
    """Instantiate the configured backend; selection happens once at startup."""
    backend_settings = settings.backend_settings()
    backend_cls = BACKENDS.get(settings.backend, CommandBackend)
    return backend_cls(settings.backend, backend_settings)


__all__ = [
    "AgentBackend",
    "BACKENDS",
    "BackendResult",
    "CommandBackend",
    "SessionOptions",
    "create_backend",
]
