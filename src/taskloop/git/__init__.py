"""Git operations for taskloop savepoints."""

from taskloop.git.checkpoint import CheckpointManager, find_repo_root, format_commit_message
from taskloop.git.ignore import REQUIRED_IGNORES, add_ignores, missing_ignores

__all__ = [
    "CheckpointManager",
    "REQUIRED_IGNORES",
    "add_ignores",
    "find_repo_root",
    "format_commit_message",
    "missing_ignores",
]
