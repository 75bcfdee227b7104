"""Subprocess wrapper for the git commands behind savepoints and the ignore guard."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# non-interactive, untranslated output
GIT_ENV_OVERRIDES = {"GIT_TERMINAL_PROMPT": "0", "LC_ALL": "C"}


@dataclass(frozen=True)
class ExecResult:
    """Captured outcome of one git invocation."""

    argv: tuple[str, ...]
    cwd: Path
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def combined_output(self) -> str:
        return "".join(part for part in (self.stdout, self.stderr) if part)

    def transcript(self) -> str:
        """``$ git ...`` line followed by the command's output."""
        return f"$ {' '.join(self.argv)}\n{self.combined_output()}"


class ExecError(RuntimeError):
    """A git command exited non-zero while ``check`` was set."""

    def __init__(self, result: ExecResult):
        detail = (result.stderr or result.stdout).strip()
        message = f"exit {result.returncode}: {' '.join(result.argv)}"
        super().__init__(f"{message}\n{detail}" if detail else message)
        self.result = result


def run_git(
    args: list[str],
    *,
    repo_root: Path,
    check: bool = True,
) -> ExecResult:
    """Run ``git <args>`` in ``repo_root``.

    Raises:
        ExecError: If ``check`` is set and git exits non-zero
        OSError: If git cannot be started
    """
    argv = ("git", *args)
    logger.debug("%s (cwd=%s)", " ".join(argv), repo_root)
    completed = subprocess.run(
        argv,
        cwd=repo_root,
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        check=False,
        env={**os.environ, **GIT_ENV_OVERRIDES},
    )
    result = ExecResult(
        argv=argv,
        cwd=repo_root,
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )
    if check and not result.ok:
        raise ExecError(result)
    return result
