"""taskloop CLI - drive a coding agent through a task file with verification and savepoints."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from taskloop import __version__
from taskloop.artifacts.store import ArtifactStore, get_default_run_root, make_run_id
from taskloop.backends import create_backend
from taskloop.cancel import CancelToken
from taskloop.config import apply_overrides, load_settings
from taskloop.engine.runner import Runner
from taskloop.errors import (
    RunFailedError,
    TaskFailedError,
    TaskFileError,
    TaskloopError,
    VerificationError,
)
from taskloop.git.checkpoint import find_repo_root
from taskloop.state.store import STATE_RELATIVE_PATH, RunStateStore
from taskloop.tasks.taskfile import TASK_FILE_RELATIVE_PATH, blocked_count, load_task_file
from taskloop.tasks.types import TaskStatus
from taskloop.verify.runner import run_verification

EXIT_TASK_FAILED = 1
EXIT_INFRASTRUCTURE = 2
EXIT_INTERRUPTED = 130

cli = typer.Typer(
    name="taskloop",
    help="taskloop - run coding-agent tasks with verification, retries and git savepoints",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

_STATUS_STYLES = {
    TaskStatus.TODO: "yellow",
    TaskStatus.DONE: "green",
    TaskStatus.FAILED: "red",
}


def _version_option_callback(value: bool) -> None:
    """Handle eager --version option."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@cli.callback()
def _cli_callback(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show taskloop version and exit.",
        is_eager=True,
        callback=_version_option_callback,
    ),
) -> None:
    _ = version


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def _fail(message: str, code: int = EXIT_INFRASTRUCTURE) -> typer.Exit:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    return typer.Exit(code)


def _resolve_repo(repo: Path | None) -> Path:
    try:
        return find_repo_root(repo or Path.cwd())
    except TaskloopError as exc:
        raise _fail(str(exc)) from exc


@cli.command()
def run(
    task_file: Path | None = typer.Option(
        None,
        "--task-file",
        help=f"Task file (default: {TASK_FILE_RELATIVE_PATH} in the repository)",
    ),
    backend: str | None = typer.Option(None, "--backend", help="Agent backend name"),
    model: str | None = typer.Option(None, "--model", help="Model passed to the backend"),
    attempts: int | None = typer.Option(
        None, "--attempts", min=1, help="Attempts per rotation (same agent session)"
    ),
    rotations: int | None = typer.Option(
        None, "--rotations", min=1, help="Rotations per task (fresh session after a reset)"
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Add missing harness entries to .gitignore without asking"
    ),
    keep_going: bool = typer.Option(
        False, "--keep-going", help="Continue with other tasks after one fails"
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", min=0, help="Deadline in seconds for the whole run"
    ),
    repo: Path | None = typer.Option(None, "--repo", help="Repository root (default: cwd)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Warnings and errors only"),
) -> None:
    """Run runnable tasks until none remain, resuming an interrupted run."""
    _configure_logging(verbose, quiet)
    repo_root = _resolve_repo(repo)

    try:
        settings = apply_overrides(
            load_settings(repo_root),
            backend=backend,
            model=model,
            attempts=attempts,
            rotations=rotations,
            auto_add_ignore=True if yes else None,
        )
        runner = Runner.open(
            repo_root,
            settings,
            create_backend(settings),
            task_file_path=task_file,
            cancel=CancelToken(timeout_seconds=timeout),
            keep_going=keep_going,
        )
        console.print(f"[cyan]Run:[/cyan] {runner.state.run_id}")
        console.print(f"[cyan]Artifacts:[/cyan] {runner.artifacts.root}")
        summary = runner.run()
    except TaskFailedError as exc:
        console.print(f"[bold red]Task failed:[/bold red] {escape(str(exc))}")
        console.print(f"[dim]Run state kept at {STATE_RELATIVE_PATH}[/dim]")
        raise typer.Exit(EXIT_TASK_FAILED) from exc
    except RunFailedError as exc:
        console.print(f"[bold red]Run failed:[/bold red] {escape(str(exc))}")
        raise typer.Exit(EXIT_TASK_FAILED) from exc
    except KeyboardInterrupt as exc:
        console.print("[yellow]Interrupted; re-run to resume[/yellow]")
        raise typer.Exit(EXIT_INTERRUPTED) from exc
    except TaskloopError as exc:
        raise _fail(str(exc)) from exc

    console.print(f"[green]✓ Completed {len(summary.completed)} task(s)[/green]")
    for task_id in summary.completed:
        console.print(f"  {task_id}")
    if summary.blocked:
        console.print(f"[yellow]{summary.blocked} task(s) blocked by failed dependencies[/yellow]")


@cli.command()
def status(
    task_file: Path | None = typer.Option(None, "--task-file", help="Task file to summarize"),
    repo: Path | None = typer.Option(None, "--repo", help="Repository root (default: cwd)"),
) -> None:
    """Show the run state and the task list."""
    repo_root = _resolve_repo(repo)
    try:
        state, _ = RunStateStore(repo_root).load()
    except TaskloopError as exc:
        raise _fail(str(exc)) from exc

    if state is None:
        console.print("[bold]Run:[/bold] none")
    elif state.idle:
        console.print(f"[bold]Run:[/bold] {state.run_id} (idle)")
    else:
        console.print(f"[bold]Run:[/bold] {state.run_id}")
        console.print(
            f"  task {state.active_task_id}: rotation {state.rotation}, attempt {state.attempt}"
        )
        console.print(f"  backend {state.backend_name or '-'} session {state.backend_session_id or '-'}")
    if state is not None and state.last_savepoint_commit:
        console.print(f"  savepoint {state.last_savepoint_commit}")

    path = task_file or repo_root / TASK_FILE_RELATIVE_PATH
    if not path.exists():
        console.print(f"[dim]No task file at {path}[/dim]")
        return
    try:
        tasks = load_task_file(path).tasks
    except TaskFileError as exc:
        raise _fail(str(exc)) from exc

    console.print(f"[bold]Tasks:[/bold] {path}")
    for task in tasks:
        style = _STATUS_STYLES[task.status]
        deps = f" [dim](deps: {', '.join(task.deps)})[/dim]" if task.deps else ""
        console.print(f"  [{style}]{task.status.value:<6}[/{style}] {escape(task.id)} {escape(task.title)}{deps}")
    blocked = blocked_count(tasks)
    if blocked:
        console.print(f"[yellow]{blocked} task(s) blocked by failed dependencies[/yellow]")


@cli.command()
def verify(
    task_id: str = typer.Argument(..., help="Task whose verification commands to run"),
    task_file: Path | None = typer.Option(None, "--task-file", help="Task file"),
    timeout: float | None = typer.Option(None, "--timeout", min=0, help="Deadline in seconds"),
    repo: Path | None = typer.Option(None, "--repo", help="Repository root (default: cwd)"),
) -> None:
    """Run one task's verification commands against the current tree."""
    repo_root = _resolve_repo(repo)
    try:
        settings = load_settings(repo_root)
        task = load_task_file(task_file or repo_root / TASK_FILE_RELATIVE_PATH).find(task_id)
        if task is None:
            raise _fail(f"Unknown task: {task_id}")
        artifacts = ArtifactStore.create(get_default_run_root(repo_root, settings.run_root), make_run_id())
        results = run_verification(
            task.verify,
            artifacts,
            cwd=repo_root,
            cancel=CancelToken(timeout_seconds=timeout),
        )
    except VerificationError as exc:
        console.print(f"[bold red]✗ {escape(exc.command)}[/bold red] (exit {exc.exit_code})")
        console.print(f"[cyan]Log:[/cyan] {exc.log_path}")
        raise typer.Exit(EXIT_TASK_FAILED) from exc
    except TaskloopError as exc:
        raise _fail(str(exc)) from exc

    for result in results:
        console.print(f"[green]✓ {escape(result.command)}[/green] [dim]{result.duration:.2f}s[/dim]")
    console.print(f"[green]✓ Verification passed for {task.id}[/green]")


@cli.command("reset-state")
def reset_state(
    repo: Path | None = typer.Option(None, "--repo", help="Repository root (default: cwd)"),
) -> None:
    """Forget the in-flight run so the next run starts fresh."""
    repo_root = _resolve_repo(repo)
    store = RunStateStore(repo_root)
    try:
        store.clear()
    except TaskloopError as exc:
        raise _fail(str(exc)) from exc
    console.print(f"[green]✓ Cleared {store.path}[/green]")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
