"""Prompt text sent to the coding agent."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taskloop.tasks.types import Task

BLOCK_SEPARATOR = "\n\n---\n\n"
MAX_FAILURE_LINES = 100
MAX_FAILURE_CHARS = 4096

IMPLEMENTER_ROLE = """\
You are a coding agent working inside the taskloop harness.

You implement exactly one task. The harness selects tasks, runs verification
and creates commits.

Rules
1. Implement ONLY the task described below.
2. Prefer minimal, surgical changes that follow existing conventions.
3. Run the verification commands listed for this task and fix any failures.
4. Do NOT commit. taskloop commits after verification passes."""

RETRIER_ROLE = """\
You are a coding agent working inside the taskloop harness. This is a retry
after a failed attempt.

Rules
1. Read the failure output carefully and find the root cause.
2. Fix ONLY what is needed to make verification pass.
3. Do not refactor unrelated code.
4. Do NOT commit. taskloop commits after verification passes."""

FRESH_ROTATION_NOTE = """\
The working tree was reset to the last good commit after repeated failures.
Earlier edits for this task are gone. Try a different approach from the one
that produced the failure below."""


def build_task_prompt(task: Task) -> str:
    """Prompt for the first attempt at a task."""
    return join_blocks(IMPLEMENTER_ROLE, implement_user_prompt(task))


def build_retry_prompt(task: Task, failure_output: str, *, fresh_rotation: bool = False) -> str:
    """Prompt for a retry, carrying the previous failure's captured output."""
    blocks = [RETRIER_ROLE]
    if fresh_rotation:
        blocks.append(FRESH_ROTATION_NOTE)
    blocks.append(retry_user_prompt(task, failure_output))
    return join_blocks(*blocks)


def implement_user_prompt(task: Task) -> str:
    blocks = [f"## Task: {task.title} ({task.id})\n\n### Description\n{task.description.strip()}"]
    if task.acceptance:
        blocks.append(format_section("Acceptance Criteria", format_bullets(task.acceptance)))
    if task.verify:
        blocks.append(format_section("Verification Commands", format_commands(task.verify)))
    return "\n\n".join(block for block in blocks if block)


def retry_user_prompt(task: Task, failure_output: str) -> str:
    blocks = [
        f"## Retry Task: {task.title} ({task.id})\n\n"
        f"### Failure Output\n```\n{trim_failure_output(failure_output)}\n```",
        format_section("Original Task Description", task.description),
    ]
    if task.verify:
        blocks.append(format_section("Verification Commands", format_commands(task.verify)))
    return "\n\n".join(block for block in blocks if block)


def trim_failure_output(output: str) -> str:
    """Keep the tail of the output: at most 100 lines and 4096 characters."""
    lines = output.split("\n")
    if len(lines) > MAX_FAILURE_LINES:
        output = "\n".join(lines[-MAX_FAILURE_LINES:])
    if len(output) > MAX_FAILURE_CHARS:
        output = "..." + output[-MAX_FAILURE_CHARS:]
    return output


def join_blocks(*blocks: str) -> str:
    return BLOCK_SEPARATOR.join(block.strip() for block in blocks if block.strip())


def format_section(title: str, body: str) -> str:
    value = body.strip()
    if not value:
        return ""
    return f"### {title}\n{value}"


def format_bullets(items: list[str]) -> str:
    return "\n".join(f"- {item.strip()}" for item in items if item.strip())


def format_commands(items: list[str]) -> str:
    return "\n".join(f"- `{item.strip()}`" for item in items if item.strip())
