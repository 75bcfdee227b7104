"""Keep harness-owned directories out of savepoint commits."""

from __future__ import annotations

from pathlib import Path

from taskloop.errors import CheckpointError
from taskloop.git.exec import run_git

REQUIRED_IGNORES = (
    ".taskloop/runs/",
    ".taskloop/state/",
)


def missing_ignores(repo_root: Path, required: tuple[str, ...] = REQUIRED_IGNORES) -> list[str]:
    """Return the required paths that git does not currently ignore."""
    missing: list[str] = []
    for path in required:
        # check-ignore exits 0 when ignored, 1 when not ignored
        result = run_git(["check-ignore", "-q", path], repo_root=repo_root, check=False)
        if result.returncode == 1:
            missing.append(path)
        elif result.returncode != 0:
            raise CheckpointError(
                f"git check-ignore failed for {path}: {result.stderr.strip()}"
            )
    return missing


def add_ignores(repo_root: Path, ignores: list[str]) -> list[str]:
    """Append ``ignores`` to ``.gitignore``, skipping lines already present.

    Returns the lines actually added.
    """
    gitignore = repo_root / ".gitignore"
    content = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
    existing = {
        line.strip()
        for line in content.splitlines()
        if line.strip() and not line.strip().startswith("#")
    }
    to_add = [item for item in ignores if item not in existing]
    if not to_add:
        return []

    prefix = "\n" if content and not content.endswith("\n") else ""
    with gitignore.open("a", encoding="utf-8") as handle:
        handle.write(prefix + "".join(f"{item}\n" for item in to_add))
    return to_add
