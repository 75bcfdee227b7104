"""Cancellable subprocess execution for long-running commands.

Verification commands and agent backends can run for minutes, so they are
polled instead of waited on: the cancel token is checked between polls and a
fired token terminates the child (then kills it after a grace period).
"""

from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING

from taskloop.errors import CancelledError

if TYPE_CHECKING:
    from pathlib import Path

    from taskloop.cancel import CancelToken

POLL_INTERVAL_SECONDS = 0.1
TERMINATE_GRACE_SECONDS = 2.0


@dataclass(frozen=True)
class ProcessOutcome:
    returncode: int
    stdout: str
    stderr: str


def run_cancellable(
    argv: list[str],
    *,
    cwd: Path,
    cancel: CancelToken | None = None,
    stdin_text: str | None = None,
    merge_stderr: bool = False,
) -> ProcessOutcome:
    """Run ``argv`` to completion unless ``cancel`` fires first.

    Raises:
        CancelledError: If the token fired; the partial output is attached as
            ``exc.partial_output``.
        OSError: If the process could not be started.
    """
    if cancel is not None:
        cancel.raise_if_cancelled()

    process = subprocess.Popen(  # noqa: S603
        argv,
        cwd=cwd,
        stdin=subprocess.PIPE if stdin_text is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
        start_new_session=True,
    )
    pending_input = stdin_text
    while True:
        try:
            stdout, stderr = process.communicate(input=pending_input, timeout=POLL_INTERVAL_SECONDS)
        except KeyboardInterrupt:
            _terminate(process)
            raise
        except subprocess.TimeoutExpired:
            pending_input = None
            if cancel is not None and cancel.cancelled:
                stdout, stderr = _terminate(process)
                error = CancelledError(cancel.reason())
                error.partial_output = "".join(part for part in (stdout, stderr) if part)
                raise error from None
            continue
        return ProcessOutcome(
            returncode=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
        )


def _terminate(process: subprocess.Popen[str]) -> tuple[str, str]:
    # signal the whole process group; the child leads its own session
    _signal_group(process, signal.SIGTERM)
    try:
        stdout, stderr = process.communicate(timeout=TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        _signal_group(process, signal.SIGKILL)
        stdout, stderr = process.communicate()
    return stdout or "", stderr or ""


def _signal_group(process: subprocess.Popen[str], sig: int) -> None:
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        return
