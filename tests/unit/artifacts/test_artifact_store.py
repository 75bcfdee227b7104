"""Tests for the per-run artifact layout."""
import re
from datetime import datetime
from pathlib import Path

import pytest

from taskloop.artifacts.store import (
    SUBDIRS,
    TASKLOOP_RUN_ROOT_ENV,
    ArtifactStore,
    get_default_run_root,
    make_run_id,
)


def test_make_run_id_format():
    run_id = make_run_id(datetime(2026, 3, 4, 5, 6, 7))
    assert re.fullmatch(r"20260304-050607-[a-z0-9]{4}", run_id)


def test_create_makes_all_subdirectories(tmp_path: Path):
    store = ArtifactStore.create(tmp_path / "runs", "20260101-000000-abcd")

    assert store.root == (tmp_path / "runs" / "20260101-000000-abcd").resolve()
    for subdir in SUBDIRS:
        assert (store.root / subdir).is_dir()


def test_create_rejects_empty_run_id(tmp_path: Path):
    with pytest.raises(ValueError, match="run id"):
        ArtifactStore.create(tmp_path, "  ")


def test_write_file_into_known_subdir(tmp_path: Path):
    store = ArtifactStore.create(tmp_path, "run")
    path = store.write_file("verify", "01.log", "ok\n")

    assert path == store.root / "verify" / "01.log"
    assert path.read_text() == "ok\n"


def test_write_file_creates_nested_directory(tmp_path: Path):
    store = ArtifactStore.create(tmp_path, "run")
    path = store.write_file("verify/r1-a2", "01.log", "x")

    assert path == store.root / "verify" / "r1-a2" / "01.log"


def test_write_file_unknown_subdir_fails(tmp_path: Path):
    store = ArtifactStore.create(tmp_path, "run")
    with pytest.raises(FileNotFoundError):
        store.write_file("nope", "a.txt", "x")


def test_next_index_counts_files(tmp_path: Path):
    store = ArtifactStore.create(tmp_path, "run")
    assert store.next_index("vcs") == 1
    store.write_file("vcs", "01-commit.log", "")
    assert store.next_index("vcs") == 2


class TestDefaultRunRoot:
    def test_repo_default(self, tmp_path: Path):
        assert get_default_run_root(tmp_path) == (tmp_path / ".taskloop" / "runs").resolve()

    def test_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv(TASKLOOP_RUN_ROOT_ENV, str(tmp_path / "elsewhere"))
        assert get_default_run_root(tmp_path / "repo") == (tmp_path / "elsewhere").resolve()

    def test_configured_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv(TASKLOOP_RUN_ROOT_ENV, str(tmp_path / "env"))
        configured = tmp_path / "configured"
        assert get_default_run_root(tmp_path, configured) == configured.resolve()
