"""Human-readable progress log and archive of finished tasks."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from taskloop.tasks.taskfile import save_task_file
from taskloop.tasks.types import TaskFile

if TYPE_CHECKING:
    from pathlib import Path

    from taskloop.tasks.types import Task

PROGRESS_RELATIVE_PATH = ".taskloop/progress.md"
ARCHIVE_RELATIVE_DIR = ".taskloop/archive"


def _now() -> datetime:
    return datetime.now(UTC)


def ensure_progress_file(repo_root: Path) -> Path:
    """Create the progress log with a header if it does not exist yet."""
    path = repo_root / PROGRESS_RELATIVE_PATH
    if path.exists():
        return path
    path.parent.mkdir(parents=True, exist_ok=True)
    stamp = _now().strftime("%Y-%m-%dT%H:%M:%SZ")
    path.write_text(f"# Progress\n\n- {stamp} Initialized progress log\n", encoding="utf-8")
    return path


def append_progress(repo_root: Path, task: Task, note: str) -> Path:
    """Append ``- <utc> <id> <title> - <note>`` to the progress log."""
    path = ensure_progress_file(repo_root)
    content = path.read_text(encoding="utf-8")
    stamp = _now().strftime("%Y-%m-%dT%H:%M:%SZ")
    prefix = "" if not content or content.endswith("\n") else "\n"
    with path.open("a", encoding="utf-8") as handle:
        handle.write(f"{prefix}- {stamp} {task.id} {task.title} - {note}\n")
    return path


def archive_task(repo_root: Path, task: Task, *, version: int = 1) -> Path:
    """Save a single-task copy of ``task`` under ``.taskloop/archive``."""
    archive_dir = repo_root / ARCHIVE_RELATIVE_DIR
    archive_dir.mkdir(parents=True, exist_ok=True)
    stamp = _now().strftime("%Y%m%dT%H%M%SZ")
    path = archive_dir / f"{stamp}-{task.id}.yaml"
    save_task_file(TaskFile(version=version, tasks=[task], single=True), path)
    return path
