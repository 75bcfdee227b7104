"""JSON helpers for harness-owned files."""

from __future__ import annotations

import json
import os
import tempfile
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path


def pretty_dumps(obj: Any) -> str:
    return f"{json.dumps(obj, indent=2, sort_keys=True, ensure_ascii=False)}\n"


def write_json_atomic(path: Path, obj: Any) -> None:
    """Write pretty JSON so that readers only ever see the old or the new file.

    The payload goes to a temporary file in the target directory, is fsynced,
    then renamed over ``path``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(pretty_dumps(obj))
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def read_json_object(path: Path) -> dict[str, Any]:
    """Read a JSON file whose top-level value must be an object."""
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("top-level payload must be a JSON object")
    return payload
