"""Tests for JSON helpers."""
import json
from pathlib import Path

import pytest

from taskloop.artifacts.json_io import pretty_dumps, read_json_object, write_json_atomic


def test_pretty_dumps_is_sorted_with_trailing_newline():
    assert pretty_dumps({"b": 1, "a": 2}) == '{\n  "a": 2,\n  "b": 1\n}\n'


def test_write_json_atomic_replaces_file_and_leaves_no_temp(tmp_path: Path):
    path = tmp_path / "state" / "run.json"
    write_json_atomic(path, {"n": 1})
    write_json_atomic(path, {"n": 2})

    assert json.loads(path.read_text()) == {"n": 2}
    assert [p.name for p in path.parent.iterdir()] == ["run.json"]


def test_write_json_atomic_failure_keeps_previous_content(tmp_path: Path):
    path = tmp_path / "run.json"
    write_json_atomic(path, {"n": 1})

    with pytest.raises(TypeError):
        write_json_atomic(path, {"bad": object()})

    assert json.loads(path.read_text()) == {"n": 1}
    assert [p.name for p in tmp_path.iterdir()] == ["run.json"]


def test_read_json_object_rejects_non_object(tmp_path: Path):
    path = tmp_path / "list.json"
    path.write_text("[1, 2]")
    with pytest.raises(ValueError, match="JSON object"):
        read_json_object(path)
