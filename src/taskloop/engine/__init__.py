"""Execution engine: retry policy and task orchestration."""

from taskloop.engine.retry import Attempt, ExecutionResult, RetryPolicy
from taskloop.engine.runner import Planner, Runner, RunSummary

__all__ = ["Attempt", "ExecutionResult", "Planner", "RetryPolicy", "RunSummary", "Runner"]
