"""Verification pipeline gating task completion."""

from taskloop.verify.runner import run_verification
from taskloop.verify.types import VerifyResult

__all__ = ["VerifyResult", "run_verification"]
