"""Top-level driver: pick a task, run it through the retry policy, checkpoint it."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from taskloop.artifacts.store import SUBDIR_PROMPTS, ArtifactStore, get_default_run_root, make_run_id
from taskloop.backends.base import SessionOptions
from taskloop.engine.progress import PROGRESS_RELATIVE_PATH, append_progress, archive_task
from taskloop.engine.prompts import build_retry_prompt, build_task_prompt
from taskloop.engine.retry import Attempt, ExecutionResult, RetryPolicy
from taskloop.errors import (
    AttemptError,
    DirtyTreeError,
    RunFailedError,
    TaskFailedError,
    VerificationError,
)
from taskloop.git.checkpoint import CheckpointManager
from taskloop.git.ignore import add_ignores, missing_ignores
from taskloop.state.store import RunState, RunStateStore
from taskloop.tasks.taskfile import (
    TASK_FILE_RELATIVE_PATH,
    blocked_count,
    load_task_file,
    next_runnable_task,
    save_task_file,
)
from taskloop.tasks.types import Task, TaskFile, TaskStatus
from taskloop.verify.runner import run_verification

if TYPE_CHECKING:
    from pathlib import Path

    from taskloop.backends.base import AgentBackend
    from taskloop.cancel import CancelToken
    from taskloop.config import Settings

logger = logging.getLogger(__name__)

COMMIT_FOOTER_KEY = "Taskloop-Task"
_TASK_DIR_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


class Planner(Protocol):
    """Produces the next task into the task file when nothing is runnable."""

    def plan_next(self, task_file_path: Path, progress_path: Path) -> None: ...


@dataclass
class RunSummary:
    run_id: str
    completed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    blocked: int = 0


class Runner:
    """Drive tasks one at a time until none is runnable.

    The runner owns the bookkeeping around ``RetryPolicy``: task selection and
    resume, the attempt callback (agent turn then verification), and the
    success/failure side effects on the task file, git history and run state.
    """

    def __init__(
        self,
        *,
        repo_root: Path,
        settings: Settings,
        backend: AgentBackend,
        state: RunState,
        store: RunStateStore,
        artifacts: ArtifactStore,
        checkpoints: CheckpointManager,
        task_file_path: Path,
        resumed: bool = False,
        planner: Planner | None = None,
        cancel: CancelToken | None = None,
        keep_going: bool = False,
    ) -> None:
        self.repo_root = repo_root
        self.settings = settings
        self.backend = backend
        self.state = state
        self.store = store
        self.artifacts = artifacts
        self.checkpoints = checkpoints
        self.task_file_path = task_file_path
        self.resumed = resumed
        self.planner = planner
        self.cancel = cancel
        self.keep_going = keep_going
        self.policy = RetryPolicy(
            max_attempts=settings.retry.attempts,
            max_rotations=settings.retry.rotations,
        )

    @classmethod
    def open(
        cls,
        repo_root: Path,
        settings: Settings,
        backend: AgentBackend,
        *,
        task_file_path: Path | None = None,
        planner: Planner | None = None,
        cancel: CancelToken | None = None,
        keep_going: bool = False,
    ) -> Runner:
        """Load or create run state and prepare the run's artifacts.

        Raises:
            DirtyTreeError: If no run is in flight and the tree has changes
            StateError: If an existing state record is malformed
        """
        repo_root = repo_root.resolve()
        store = RunStateStore(repo_root)
        state, exists = store.load()
        probe = CheckpointManager(repo_root)

        if state is None:
            if probe.is_dirty():
                raise DirtyTreeError(
                    "Uncommitted changes detected; commit or stash them before starting a run"
                )
            state = RunState(run_id=make_run_id(), backend_name=settings.backend)
        else:
            logger.info("resuming run %s", state.run_id)
            if state.backend_name and state.backend_name != settings.backend:
                logger.warning(
                    "backend changed from %s to %s; starting a fresh agent session",
                    state.backend_name,
                    settings.backend,
                )
                state.backend_session_id = ""
            state.backend_name = settings.backend

        artifacts = ArtifactStore.create(get_default_run_root(repo_root, settings.run_root), state.run_id)
        state.artifact_root_path = str(artifacts.root)

        runner = cls(
            repo_root=repo_root,
            settings=settings,
            backend=backend,
            state=state,
            store=store,
            artifacts=artifacts,
            checkpoints=CheckpointManager(repo_root, artifacts),
            task_file_path=task_file_path or repo_root / TASK_FILE_RELATIVE_PATH,
            resumed=exists,
            planner=planner,
            cancel=cancel,
            keep_going=keep_going,
        )
        runner.ensure_ignores()
        return runner

    @property
    def progress_path(self) -> Path:
        return self.repo_root / PROGRESS_RELATIVE_PATH

    def ensure_ignores(self) -> None:
        """Keep run artifacts and state out of savepoint commits."""
        missing = missing_ignores(self.repo_root)
        if not missing:
            return
        if self.settings.auto_add_ignore:
            added = add_ignores(self.repo_root, missing)
            logger.info("added to .gitignore: %s", ", ".join(added))
        else:
            logger.warning(
                "not in .gitignore: %s (enable auto_add_ignore or pass --yes to add them)",
                ", ".join(missing),
            )

    def run(self) -> RunSummary:
        """Execute runnable tasks until none remain.

        Raises:
            TaskFailedError: First exhausted task when ``keep_going`` is off
            RunFailedError: At the end of a ``keep_going`` run with failures
        """
        summary = RunSummary(run_id=self.state.run_id)
        failures: list[TaskFailedError] = []

        while True:
            task_file = self._load_tasks()
            task = self.select_task(task_file) if task_file is not None else None
            if task is None and self.planner is not None and not failures:
                logger.info("no runnable task; asking planner for the next one")
                self.planner.plan_next(self.task_file_path, self.progress_path)
                task_file = self._load_tasks()
                task = self.select_task(task_file) if task_file is not None else None
            if task is None or task_file is None:
                break

            try:
                self.execute_task(task_file, task)
            except TaskFailedError as exc:
                summary.failed.append(task.id)
                if not self.keep_going:
                    raise
                failures.append(exc)
                continue
            summary.completed.append(task.id)

        final = self._load_tasks()
        if final is not None:
            summary.blocked = blocked_count(final.tasks)

        if failures:
            raise RunFailedError(failures)

        self.store.clear()
        logger.info("no runnable tasks remain; run state cleared")
        return summary

    def select_task(self, task_file: TaskFile) -> Task | None:
        """Resume the in-flight task if it is still todo, else the next runnable one.

        An in-flight task already marked done gets its pending savepoint; one
        marked failed is rolled back and left failed.
        """
        if self.state.active_task_id:
            active = task_file.find(self.state.active_task_id)
            if active is not None and active.status == TaskStatus.TODO:
                return active
            if active is not None and active.status == TaskStatus.DONE:
                self._finish_interrupted_task(active)
            elif active is not None and active.status == TaskStatus.FAILED:
                logger.info("previous run left task %s failed; discarding its edits", active.id)
                self._abandon_failed_task(active.id)
                task_file = self._load_tasks() or task_file
        return next_runnable_task(task_file.tasks)

    def execute_task(self, task_file: TaskFile, task: Task) -> ExecutionResult:
        """Run one task through the retry policy and record the outcome."""
        logger.info("starting: %s [%s]", task.title, task.id)
        try:
            result = self.policy.execute(
                task,
                state=self.state,
                store=self.store,
                checkpoints=self.checkpoints,
                attempt_fn=lambda attempt: self._attempt(task, attempt),
            )
        except TaskFailedError:
            logger.error("failed: %s [%s]", task.title, task.id)
            if self.keep_going:
                self._abandon_failed_task(task.id)
            else:
                save_task_file(task_file, self.task_file_path)
            append_progress(self.repo_root, task, f"failed after {self.policy.max_rotations} rotations")
            raise

        task.mark(TaskStatus.DONE)
        save_task_file(task_file, self.task_file_path)
        append_progress(
            self.repo_root,
            task,
            f"done (rotation {result.rotation}, attempt {result.attempt})",
        )
        archive_task(self.repo_root, task, version=task_file.version)
        commit = self.checkpoints.create_savepoint(task.commit_message, _commit_footer(task))
        self.state.finish_task(commit)
        self.store.save(self.state)
        logger.info("completed: %s [%s] as %s", task.title, task.id, commit[:12])
        return result

    def _attempt(self, task: Task, attempt: Attempt) -> None:
        if attempt.rotation > 1 and attempt.number == 1:
            self.ensure_ignores()

        options = SessionOptions(
            working_dir=self.repo_root,
            artifacts_dir=self.artifacts.root,
            model=self.settings.backend_settings().model,
        )
        if not attempt.session_id:
            attempt.session_id = self.backend.start_session(options)
            self.state.backend_session_id = attempt.session_id
            self.store.save(self.state)
            logger.info("session: %s", attempt.session_id)

        label = self._attempt_label(task, attempt)
        prompt = self._prompt_for(task, attempt)
        self.artifacts.write_file(SUBDIR_PROMPTS, f"{label}.md", prompt)

        self.backend.send(attempt.session_id, prompt, options, cancel=self.cancel)

        logger.info("verifying %s", task.id)
        run_verification(
            task.verify,
            self.artifacts,
            cwd=self.repo_root,
            cancel=self.cancel,
            label=label,
        )

    def _attempt_label(self, task: Task, attempt: Attempt) -> str:
        """Artifact name ``<task>/r<R>-a<A>`` for this attempt, suffixed if already used.

        A resumed run shares the run id and may repeat an attempt; the suffix
        keeps the earlier prompt and logs intact.
        """
        base = f"{_TASK_DIR_UNSAFE.sub('_', task.id)}/r{attempt.rotation}-a{attempt.number}"
        label = base
        repeat = 1
        while (self.artifacts.root / SUBDIR_PROMPTS / f"{label}.md").exists():
            repeat += 1
            label = f"{base}.{repeat}"
        return label

    def _prompt_for(self, task: Task, attempt: Attempt) -> str:
        if not attempt.is_retry:
            return build_task_prompt(task)
        return build_retry_prompt(
            task,
            failure_output(attempt.previous_failure),
            fresh_rotation=attempt.rotation > 1 and attempt.number == 1,
        )

    def _finish_interrupted_task(self, task: Task) -> None:
        """Complete the savepoint of a task that was marked done before the run stopped."""
        head = self.checkpoints.current_commit()
        footer = _commit_footer(task)
        committed = footer in self.checkpoints.commit_message(head).splitlines()
        if committed and head != self.state.last_savepoint_commit:
            commit = head
        else:
            logger.info("task %s is done but was never committed; creating its savepoint", task.id)
            commit = self.checkpoints.create_savepoint(task.commit_message, footer)
        self.state.finish_task(commit)
        self.store.save(self.state)

    def _abandon_failed_task(self, task_id: str) -> None:
        """Reset the tree to the savepoint while keeping the task marked failed."""
        if self.state.last_savepoint_commit:
            self.checkpoints.rollback(self.state.last_savepoint_commit)
        task_file = self._load_tasks()
        if task_file is not None:
            task = task_file.find(task_id)
            if task is not None and task.status != TaskStatus.FAILED:
                task.mark(TaskStatus.FAILED)
                save_task_file(task_file, self.task_file_path)
        self.state.active_task_id = ""
        self.state.backend_session_id = ""
        self.store.save(self.state)

    def _load_tasks(self) -> TaskFile | None:
        if self.planner is not None and not self.task_file_path.exists():
            return None
        return load_task_file(self.task_file_path)


def _commit_footer(task: Task) -> str:
    return f"{COMMIT_FOOTER_KEY}: {task.id}"


def failure_output(failure: AttemptError) -> str:
    """Text shown to the agent about its previous failure."""
    if isinstance(failure, VerificationError) and failure.log_path is not None:
        header = f"$ {failure.command}\n(exit {failure.exit_code})\n"
        try:
            return header + failure.log_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return header + str(failure)
    return str(failure)
