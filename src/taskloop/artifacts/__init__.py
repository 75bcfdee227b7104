"""Run artifact storage."""

from taskloop.artifacts.json_io import read_json_object, write_json_atomic
from taskloop.artifacts.store import (
    SUBDIR_BACKEND,
    SUBDIR_PROMPTS,
    SUBDIR_VCS,
    SUBDIR_VERIFY,
    ArtifactStore,
    get_default_run_root,
    make_run_id,
)

__all__ = [
    "ArtifactStore",
    "SUBDIR_BACKEND",
    "SUBDIR_PROMPTS",
    "SUBDIR_VCS",
    "SUBDIR_VERIFY",
    "get_default_run_root",
    "make_run_id",
    "read_json_object",
    "write_json_atomic",
]
