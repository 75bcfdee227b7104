"""Savepoint commits and hard-reset rollback over a git working tree."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from taskloop.artifacts.store import SUBDIR_VCS
from taskloop.errors import CheckpointError
from taskloop.git.exec import ExecError, ExecResult, run_git

if TYPE_CHECKING:
    from taskloop.artifacts.store import ArtifactStore

logger = logging.getLogger(__name__)


def find_repo_root(cwd: Path) -> Path:
    """Return the top-level directory of the git repository containing ``cwd``."""
    try:
        result = run_git(["rev-parse", "--show-toplevel"], repo_root=cwd)
    except (ExecError, OSError) as exc:
        raise CheckpointError(f"Not in a git repository: {cwd}\n{exc}") from exc
    return Path(result.stdout.strip()).resolve()


def format_commit_message(subject: str, footer: str) -> str:
    """Subject line, blank line, footer line."""
    return f"{subject.strip()}\n\n{footer.strip()}"


class CheckpointManager:
    """Create and restore savepoints for the working tree rooted at ``repo_root``.

    ``create_savepoint`` is not idempotent: calling it twice with no changes in
    between fails because git refuses an empty commit. Rollback restores
    tracked files only; untracked files created since the savepoint are left in
    place.
    """

    def __init__(self, repo_root: Path, artifacts: ArtifactStore | None = None) -> None:
        self.repo_root = repo_root.resolve()
        self.artifacts = artifacts

    def current_commit(self) -> str:
        return self._git("rev-parse", "HEAD").stdout.strip()

    def is_dirty(self) -> bool:
        return bool(self._git("status", "--porcelain").stdout.strip())

    def commit_message(self, commit_id: str = "HEAD") -> str:
        return self._git("log", "-1", "--format=%B", commit_id).stdout

    def create_savepoint(self, subject: str, footer: str) -> str:
        """Stage everything (tracked and untracked), commit, return the new commit id."""
        if not subject.strip():
            raise CheckpointError("Savepoint subject cannot be empty")
        message = format_commit_message(subject, footer)
        add = self._git("add", "-A")
        commit = self._git("commit", "-m", message)
        commit_id = self.current_commit()
        self._record("commit", [add, commit], extra=f"commit: {commit_id}\n")
        logger.info("savepoint %s: %s", commit_id[:12], subject.strip())
        return commit_id

    def rollback(self, commit_id: str) -> None:
        """Hard-reset the working tree to ``commit_id`` (no ``git clean``)."""
        if not commit_id.strip():
            raise CheckpointError("Cannot roll back: no savepoint commit recorded")
        reset = self._git("reset", "--hard", commit_id)
        self._record("rollback", [reset])
        logger.info("rolled back working tree to %s", commit_id[:12])

    def _git(self, *args: str) -> ExecResult:
        try:
            return run_git(list(args), repo_root=self.repo_root)
        except ExecError as exc:
            raise CheckpointError(f"Git command failed: git {' '.join(args)}\n{exc}") from exc
        except OSError as exc:
            raise CheckpointError(f"Unable to run git: {exc}") from exc

    def _record(self, operation: str, results: list[ExecResult], *, extra: str = "") -> None:
        if self.artifacts is None:
            return
        lines = [result.transcript() for result in results]
        lines.append(extra)
        index = self.artifacts.next_index(SUBDIR_VCS)
        self.artifacts.write_file(SUBDIR_VCS, f"{index:02d}-{operation}.log", "".join(lines))
