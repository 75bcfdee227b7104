"""Agent backend contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from taskloop.cancel import CancelToken


@dataclass(frozen=True)
class SessionOptions:
    """Where the agent works and where its output is captured."""

    working_dir: Path
    artifacts_dir: Path | None = None
    model: str = ""


@dataclass(frozen=True)
class BackendResult:
    """What the agent returned for one prompt."""

    output: str
    metadata: dict[str, str] = field(default_factory=dict)


class AgentBackend(Protocol):
    """Capability interface every agent backend implements.

    ``start_session`` returns an opaque handle; ``send`` delivers a prompt
    within that session so the agent keeps its conversational context across
    retries. A handle persisted by an earlier process is still valid for
    ``send``. Failures are raised as ``BackendError``.
    """

    name: str

    def start_session(self, options: SessionOptions) -> str: ...

    def send(
        self,
        session_id: str,
        prompt: str,
        options: SessionOptions,
        *,
        cancel: CancelToken | None = None,
    ) -> BackendResult: ...
