"""Per-run artifact directory layout."""

from __future__ import annotations

import os
import random
import string
from datetime import datetime
from pathlib import Path

HARNESS_DIRNAME = ".taskloop"
RUNS_RELATIVE_PATH = f"{HARNESS_DIRNAME}/runs"
TASKLOOP_RUN_ROOT_ENV = "TASKLOOP_RUN_ROOT"

SUBDIR_PROMPTS = "prompts"
SUBDIR_BACKEND = "backend"
SUBDIR_VERIFY = "verify"
SUBDIR_VCS = "vcs"
SUBDIRS = (SUBDIR_PROMPTS, SUBDIR_BACKEND, SUBDIR_VERIFY, SUBDIR_VCS)

_RUN_ID_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def make_run_id(now: datetime | None = None) -> str:
    """Create a sortable run id: local timestamp plus a short random suffix."""
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    suffix = "".join(random.choices(_RUN_ID_SUFFIX_ALPHABET, k=4))
    return f"{stamp}-{suffix}"


def get_default_run_root(repo_root: Path, configured: Path | None = None) -> Path:
    """Resolve the runs root: explicit config, then TASKLOOP_RUN_ROOT, then the repo."""
    if configured is not None:
        return configured.expanduser().resolve()

    env_root = os.getenv(TASKLOOP_RUN_ROOT_ENV, "").strip()
    if env_root:
        return Path(env_root).expanduser().resolve()

    return (repo_root / RUNS_RELATIVE_PATH).resolve()


class ArtifactStore:
    """Directory tree for one run: ``<runs-root>/<run-id>/{prompts,backend,verify,vcs}``.

    Files written here are never rewritten by the harness and are not cleaned
    up after the run.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    @classmethod
    def create(cls, runs_root: Path, run_id: str) -> ArtifactStore:
        if not run_id.strip():
            raise ValueError("run id cannot be empty")
        root = (runs_root / run_id).resolve()
        for subdir in SUBDIRS:
            (root / subdir).mkdir(parents=True, exist_ok=True)
        return cls(root)

    def write_file(self, subdir: str, filename: str, content: str) -> Path:
        """Write one text file into ``subdir`` and return its path.

        ``subdir`` may name a nested directory (``verify/t1/r1-a2``) below one of
        the four layout directories, and ``filename`` may carry a relative
        directory part; nested directories are created on demand.
        """
        top = subdir.partition("/")[0]
        if not (self.root / top).is_dir():
            raise FileNotFoundError(f"artifact subdirectory {top} does not exist in {self.root}")
        path = self.root / subdir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def next_index(self, subdir: str) -> int:
        """Return the next 1-based sequence number for numbered files in ``subdir``."""
        existing = [p for p in (self.root / subdir).iterdir() if p.is_file()]
        return len(existing) + 1
