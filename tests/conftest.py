"""Pytest configuration and fixtures for taskloop tests."""
import subprocess
from pathlib import Path

import pytest


def pytest_sessionfinish(session, exitstatus):
    """Fail the session if --cov was requested but no coverage data was written."""
    cov_enabled = any("--cov" in str(arg) for arg in session.config.args)
    if not cov_enabled:
        return

    coverage_files = list(Path.cwd().glob(".coverage*"))
    if not coverage_files:
        pytest.exit(
            "Coverage was enabled but no data was collected. "
            "Check that tests import from 'taskloop' (the package) not 'src/taskloop'.",
            returncode=1,
        )


def _git(repo: Path, *args: str) -> str:
    """Run a git command in ``repo`` and return its stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=repo,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a temporary git repository with one commit."""
    repo = tmp_path / "test_repo"
    repo.mkdir()

    _git(repo, "init")
    _git(repo, "config", "user.email", "test@example.com")
    _git(repo, "config", "user.name", "Test User")
    _git(repo, "config", "commit.gpgsign", "false")

    (repo / "README.md").write_text("# Test Repo\n")
    _git(repo, "add", "README.md")
    _git(repo, "commit", "-m", "Initial commit")

    return repo.resolve()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point global config lookup at an empty location."""
    config_home = tmp_path / "xdg"
    monkeypatch.delenv("TASKLOOP_CONFIG", raising=False)
    monkeypatch.delenv("TASKLOOP_RUN_ROOT", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    return config_home


@pytest.fixture
def git():
    """Callable ``git(repo, *args) -> stdout`` for assertions on repository state."""
    return _git
