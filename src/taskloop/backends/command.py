"""Backend that drives an agent CLI as a subprocess."""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime
from typing import TYPE_CHECKING

from taskloop.artifacts.store import SUBDIR_BACKEND
from taskloop.backends.base import BackendResult, SessionOptions
from taskloop.errors import BackendError, CancelledError
from taskloop.process import run_cancellable

if TYPE_CHECKING:
    from taskloop.cancel import CancelToken
    from taskloop.config import BackendSettings

logger = logging.getLogger(__name__)

PROMPT_PLACEHOLDER = "{prompt}"


class CommandBackend:
    """Run ``command args...`` once per prompt.

    The prompt replaces a ``{prompt}`` argument when one is configured and is
    written to stdin otherwise. The first send of a session starts a fresh
    agent conversation; later sends append ``continue_args`` so the agent CLI
    resumes its most recent conversation. A handle this process never issued
    (restored from run state) is treated as already started. Each send's
    stdout and stderr are captured under ``backend/`` in the run's artifacts.
    """

    def __init__(self, name: str, settings: BackendSettings) -> None:
        if not settings.command.strip():
            raise ValueError(f"backend {name!r} has an empty command")
        self.name = name
        self.settings = settings
        self._sends: dict[str, int] = {}

    def start_session(self, options: SessionOptions) -> str:
        session_id = f"{self.name}-{os.getpid()}-{time.time_ns()}"
        self._sends[session_id] = 0
        logger.debug("started %s session %s in %s", self.name, session_id, options.working_dir)
        return session_id

    def send(
        self,
        session_id: str,
        prompt: str,
        options: SessionOptions,
        *,
        cancel: CancelToken | None = None,
    ) -> BackendResult:
        sends = self._sends.get(session_id, 1)
        argv, stdin_text = self.build_argv(prompt, model=options.model, continued=sends > 0)
        self._sends[session_id] = sends + 1
        try:
            outcome = run_cancellable(
                argv,
                cwd=options.working_dir,
                cancel=cancel,
                stdin_text=stdin_text,
            )
        except FileNotFoundError as exc:
            raise BackendError(f"{self.name} command not found: {self.settings.command}") from exc
        except CancelledError as exc:
            raise BackendError(f"{self.name} command {exc}") from exc
        except OSError as exc:
            raise BackendError(f"{self.name} command failed to start: {exc}") from exc

        self._capture(options, outcome.stdout, outcome.stderr)
        if outcome.returncode != 0:
            raise BackendError(
                f"{self.name} command exited {outcome.returncode}: {outcome.stderr.strip()[-2000:]}"
            )
        return BackendResult(
            output=outcome.stdout,
            metadata={"session_id": session_id, "command": self.settings.command},
        )

    def build_argv(
        self,
        prompt: str,
        *,
        model: str = "",
        continued: bool = False,
    ) -> tuple[list[str], str | None]:
        """Return the argv to run and the text to feed on stdin (or None)."""
        args = list(self.settings.args)
        effective_model = model or self.settings.model
        if effective_model:
            args.extend(["--model", effective_model])
        if continued:
            args.extend(self.settings.continue_args)

        if any(PROMPT_PLACEHOLDER in arg for arg in args):
            rendered = [arg.replace(PROMPT_PLACEHOLDER, prompt) for arg in args]
            return [self.settings.command, *rendered], None
        return [self.settings.command, *args], prompt

    def _capture(self, options: SessionOptions, stdout: str, stderr: str) -> None:
        if options.artifacts_dir is None:
            return
        backend_dir = options.artifacts_dir / SUBDIR_BACKEND
        backend_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S.%f")
        (backend_dir / f"{stamp}.stdout.txt").write_text(stdout, encoding="utf-8")
        (backend_dir / f"{stamp}.stderr.txt").write_text(stderr, encoding="utf-8")
