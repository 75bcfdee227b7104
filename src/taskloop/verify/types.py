"""Verification runner types."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of one verification command that ran to completion."""

    command: str
    duration: float
    log_path: Path
