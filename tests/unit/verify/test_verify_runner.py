"""Tests for the verification runner."""
from pathlib import Path

import pytest

from taskloop.artifacts.store import ArtifactStore
from taskloop.cancel import CancelToken
from taskloop.errors import UNKNOWN_EXIT_CODE, CancelledError, VerificationError
from taskloop.verify.runner import CommandExitError, run_verification


@pytest.fixture
def artifacts(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore.create(tmp_path / "runs", "run-1")


def test_all_commands_pass(tmp_path: Path, artifacts: ArtifactStore):
    results = run_verification(["echo one", "echo two >&2"], artifacts, cwd=tmp_path)

    assert [r.command for r in results] == ["echo one", "echo two >&2"]
    assert results[0].log_path == artifacts.root / "verify" / "01.log"
    assert results[0].log_path.read_text() == "one\n"
    assert results[1].log_path.read_text() == "two\n"
    assert all(r.duration >= 0 for r in results)


def test_empty_command_list_passes(tmp_path: Path, artifacts: ArtifactStore):
    assert run_verification([], artifacts, cwd=tmp_path) == []


def test_stops_at_first_failure(tmp_path: Path, artifacts: ArtifactStore):
    with pytest.raises(VerificationError) as excinfo:
        run_verification(["true", "echo broken; exit 3", "true"], artifacts, cwd=tmp_path)

    error = excinfo.value
    assert error.command == "echo broken; exit 3"
    assert error.exit_code == 3
    assert isinstance(error.cause, CommandExitError)
    assert error.log_path == artifacts.root / "verify" / "02.log"
    assert error.log_path.read_text() == "broken\n"
    assert len(error.results) == 2
    assert sorted(p.name for p in (artifacts.root / "verify").iterdir()) == ["01.log", "02.log"]


def test_undecodable_output_is_a_typed_failure(tmp_path: Path, artifacts: ArtifactStore):
    with pytest.raises(VerificationError) as excinfo:
        run_verification(["printf 'bad \\377\\376 bytes'; exit 1"], artifacts, cwd=tmp_path)

    error = excinfo.value
    assert error.exit_code == 1
    assert isinstance(error.cause, CommandExitError)
    log = error.log_path.read_text(encoding="utf-8")
    assert log.startswith("bad ")
    assert log.endswith(" bytes")
    assert "�" in log


def test_label_nests_logs(tmp_path: Path, artifacts: ArtifactStore):
    results = run_verification(["true"], artifacts, cwd=tmp_path, label="r2-a1")
    assert results[0].log_path == artifacts.root / "verify" / "r2-a1" / "01.log"


def test_commands_run_in_cwd(tmp_path: Path, artifacts: ArtifactStore):
    (tmp_path / "marker.txt").write_text("here")
    run_verification(["test -f marker.txt"], artifacts, cwd=tmp_path)


def test_cancelled_token_reports_unknown_exit_code(tmp_path: Path, artifacts: ArtifactStore):
    token = CancelToken()
    token.cancel()

    with pytest.raises(VerificationError) as excinfo:
        run_verification(["true"], artifacts, cwd=tmp_path, cancel=token)

    assert excinfo.value.exit_code == UNKNOWN_EXIT_CODE
    assert excinfo.value.cancelled
    assert str(excinfo.value.cause) == "cancelled"


def test_deadline_terminates_running_command(tmp_path: Path, artifacts: ArtifactStore):
    token = CancelToken(timeout_seconds=0.3)

    with pytest.raises(VerificationError) as excinfo:
        run_verification(["echo started; sleep 30"], artifacts, cwd=tmp_path, cancel=token)

    error = excinfo.value
    assert isinstance(error.cause, CancelledError)
    assert str(error.cause) == "deadline exceeded"
    assert error.exit_code == UNKNOWN_EXIT_CODE
    assert error.log_path.exists()


def test_true_false_true_writes_two_logs_and_skips_third(tmp_path: Path, artifacts: ArtifactStore):
    with pytest.raises(VerificationError) as excinfo:
        run_verification(["true", "false", "true"], artifacts, cwd=tmp_path)

    assert excinfo.value.command == "false"
    assert excinfo.value.exit_code == 1
    assert sorted(p.name for p in (artifacts.root / "verify").iterdir()) == ["01.log", "02.log"]


def test_commands_after_failure_never_run(tmp_path: Path, artifacts: ArtifactStore):
    with pytest.raises(VerificationError):
        run_verification(["true", "false", "touch ran.txt"], artifacts, cwd=tmp_path)

    assert not (tmp_path / "ran.txt").exists()
