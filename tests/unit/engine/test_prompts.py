"""Tests for agent prompt construction."""
from taskloop.engine.prompts import (
    BLOCK_SEPARATOR,
    FRESH_ROTATION_NOTE,
    IMPLEMENTER_ROLE,
    MAX_FAILURE_CHARS,
    RETRIER_ROLE,
    build_retry_prompt,
    build_task_prompt,
    trim_failure_output,
)
from taskloop.tasks.types import Task


def _task() -> Task:
    return Task(
        id="t1",
        title="Add parser",
        description="Parse the config file.",
        acceptance=["handles empty files"],
        verify=["pytest -q"],
        commit_message="Add parser",
    )


def test_task_prompt_contains_role_and_task_details():
    prompt = build_task_prompt(_task())

    assert prompt.startswith(IMPLEMENTER_ROLE)
    assert BLOCK_SEPARATOR in prompt
    assert "## Task: Add parser (t1)" in prompt
    assert "- handles empty files" in prompt
    assert "- `pytest -q`" in prompt


def test_task_prompt_omits_empty_sections():
    prompt = build_task_prompt(Task(id="t2", title="Bare", commit_message="m"))
    assert "Acceptance Criteria" not in prompt
    assert "Verification Commands" not in prompt


def test_retry_prompt_carries_failure_output():
    prompt = build_retry_prompt(_task(), "AssertionError: boom")

    assert prompt.startswith(RETRIER_ROLE)
    assert "AssertionError: boom" in prompt
    assert "### Original Task Description\nParse the config file." in prompt
    assert FRESH_ROTATION_NOTE not in prompt


def test_retry_prompt_after_rotation_mentions_reset():
    prompt = build_retry_prompt(_task(), "boom", fresh_rotation=True)
    assert FRESH_ROTATION_NOTE in prompt


def test_trim_keeps_last_hundred_lines():
    output = "\n".join(f"line {i}" for i in range(250))
    trimmed = trim_failure_output(output)

    lines = trimmed.split("\n")
    assert len(lines) == 100
    assert lines[0] == "line 150"
    assert lines[-1] == "line 249"


def test_trim_caps_characters():
    trimmed = trim_failure_output("x" * 10_000)
    assert trimmed == "..." + "x" * MAX_FAILURE_CHARS


def test_trim_leaves_short_output_alone():
    assert trim_failure_output("short\n") == "short\n"
