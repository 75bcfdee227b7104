"""Run a task's verification commands against the working tree."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from taskloop.artifacts.store import SUBDIR_VERIFY
from taskloop.errors import UNKNOWN_EXIT_CODE, CancelledError, VerificationError
from taskloop.process import run_cancellable
from taskloop.verify.types import VerifyResult

if TYPE_CHECKING:
    from pathlib import Path

    from taskloop.artifacts.store import ArtifactStore
    from taskloop.cancel import CancelToken

logger = logging.getLogger(__name__)

SHELL_ARGV = ("/bin/sh", "-lc")


class CommandExitError(RuntimeError):
    """Underlying cause for a verification command that exited non-zero."""

    def __init__(self, exit_code: int) -> None:
        super().__init__(f"exit status {exit_code}")
        self.exit_code = exit_code


def run_verification(
    commands: list[str],
    artifacts: ArtifactStore,
    *,
    cwd: Path,
    cancel: CancelToken | None = None,
    label: str | None = None,
) -> list[VerifyResult]:
    """Execute verification commands in order, stopping at the first failure.

    Each command's combined stdout/stderr is written to ``verify/NN.log``
    (``verify/<label>/NN.log`` when ``label`` is given), numbered from 01 in
    command order. Commands after a failure are not run and get no log.

    Args:
        commands: Shell command strings, run with ``/bin/sh -lc``
        artifacts: Artifact store of the current run
        cwd: Working tree the commands run in
        cancel: Cancel token bounding every command
        label: Optional nested directory under ``verify/``

    Returns:
        One VerifyResult per command, in order

    Raises:
        VerificationError: On the first command that fails, is cancelled or
            cannot be started
    """
    subdir = f"{SUBDIR_VERIFY}/{label}" if label else SUBDIR_VERIFY
    results: list[VerifyResult] = []

    for index, command in enumerate(commands, start=1):
        logger.debug("verify %02d: %s", index, command)
        started = time.monotonic()
        exit_code = UNKNOWN_EXIT_CODE
        cause: BaseException | None = None
        try:
            outcome = run_cancellable(
                [*SHELL_ARGV, command],
                cwd=cwd,
                cancel=cancel,
                merge_stderr=True,
            )
            output = outcome.stdout
            exit_code = outcome.returncode
            if exit_code != 0:
                cause = CommandExitError(exit_code)
        except CancelledError as exc:
            output = exc.partial_output
            cause = exc
        except OSError as exc:
            output = f"failed to start command: {exc}\n"
            cause = exc
        duration = time.monotonic() - started

        log_path = artifacts.write_file(subdir, f"{index:02d}.log", output)
        results.append(VerifyResult(command=command, duration=duration, log_path=log_path))

        if cause is not None:
            logger.info("verification failed: %s (exit %s, %.2fs)", command, exit_code, duration)
            raise VerificationError(
                command=command,
                exit_code=exit_code,
                log_path=log_path,
                cause=cause,
                results=results,
            )
        logger.info("verification passed: %s (%.2fs)", command, duration)

    return results
