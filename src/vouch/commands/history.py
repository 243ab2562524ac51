"""History commands: inspect and prune validation history in git notes."""

from pathlib import Path

import typer
from rich.table import Table

from ..config import ConfigError, HistoryConfig, get_config_dir, load_config
from ..core import HistoryStore, RunCache, compute_tree_identity, summarize_note
from ..models import PruneResult, ValidationRun
from ..output import get_output_context
from ..services import GitError, NotesStore, UnsafeArgumentError, get_repo_root

history_app = typer.Typer(
    help="View and manage validation history stored in git notes",
    no_args_is_help=True,
)


def _open_history() -> tuple[Path, HistoryStore]:
    ctx = get_output_context()
    try:
        repo_root = get_repo_root()
    except GitError:
        ctx.error("Not a git repository")
        raise typer.Exit(3) from None
    try:
        config = load_config(get_config_dir(repo_root)).history
    except ConfigError as e:
        ctx.warning(f"Ignoring invalid configuration: {e}")
        config = HistoryConfig()
    return repo_root, HistoryStore(NotesStore(cwd=repo_root), config)


def _status(run: ValidationRun) -> str:
    return "[green]passed[/green]" if run.passed else "[red]failed[/red]"


@history_app.command("list")
def history_list(
    limit: int = typer.Option(20, "--limit", "-l", min=1, help="Maximum runs to show"),
    branch: str | None = typer.Option(None, "--branch", "-b", help="Only runs on this branch"),
) -> None:
    """List recorded validations, newest first."""
    ctx = get_output_context()
    _, history = _open_history()

    runs = [
        (note.tree_hash, run)
        for note in history.all_notes()
        for run in note.runs
        if branch is None or run.branch == branch
    ]
    runs.sort(key=lambda item: item[1].timestamp, reverse=True)
    runs = runs[:limit]

    if ctx.json_mode:
        ctx.print_json(
            [
                {"tree_hash": tree_hash, **run.model_dump(mode="json", exclude={"result"})}
                for tree_hash, run in runs
            ]
        )
        return

    if not runs:
        ctx.print("No validation history found")
        return

    table = Table(title="Validation history")
    table.add_column("Time")
    table.add_column("Tree")
    table.add_column("Branch")
    table.add_column("Result")
    table.add_column("Duration", justify="right")
    for tree_hash, run in runs:
        table.add_row(
            f"{run.timestamp:%Y-%m-%d %H:%M}",
            tree_hash[:12],
            run.branch,
            _status(run),
            f"{run.duration_ms / 1000:.1f}s",
        )
    ctx.console.print(table)


@history_app.command("show")
def history_show(
    tree_hash: str | None = typer.Argument(
        None, help="Tree identity (defaults to the current working tree)"
    ),
) -> None:
    """Show every recorded run for one tree identity."""
    ctx = get_output_context()
    repo_root, history = _open_history()

    if tree_hash is None:
        tree_hash = compute_tree_identity(repo_root).hash

    try:
        note = history.read(tree_hash)
    except UnsafeArgumentError as e:
        ctx.error(f"Invalid tree hash: {e}")
        raise typer.Exit(1) from None

    if note is None:
        ctx.error(f"No history for tree {tree_hash}")
        raise typer.Exit(1)

    summary = summarize_note(note)
    if ctx.json_mode:
        ctx.print_json(
            {**note.model_dump(mode="json"), "summary": summary.model_dump(mode="json")}
        )
        return

    ctx.print(f"[bold]Tree:[/bold] {note.tree_hash}")
    ctx.print(f"[bold]Pattern:[/bold] {summary.recent_pattern} ({summary.success_rate} passing)")
    for run in reversed(note.runs):
        ctx.print(
            f"  {run.id}  {run.timestamp:%Y-%m-%d %H:%M:%S}  {_status(run)}  "
            f"{run.branch}@{run.head_commit[:8]}"
        )
        if not run.passed and run.result.failed_step:
            ctx.print(f"    failed step: {run.result.failed_step}")


def _report_prune(label: str, result: PruneResult, dry_run: bool) -> None:
    ctx = get_output_context()
    verb = "Would prune" if dry_run else "Pruned"
    ctx.print(
        f"{verb} {result.notes_pruned} {label} note(s) "
        f"({result.runs_pruned} run(s)); {result.notes_remaining} remaining"
    )


@history_app.command("prune")
def history_prune(
    older_than: int = typer.Option(
        90, "--older-than", min=1, help="Remove notes whose oldest run is older than DAYS"
    ),
    all_notes: bool = typer.Option(False, "--all", help="Remove all validation history"),
    run_cache: bool = typer.Option(False, "--run-cache", help="Also remove cached command results"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be removed"),
) -> None:
    """Remove old validation history."""
    ctx = get_output_context()
    repo_root, history = _open_history()

    if all_notes:
        result = history.prune_all(dry_run=dry_run)
    else:
        result = history.prune_older_than(older_than, dry_run=dry_run)

    cache_result = None
    if run_cache:
        cache_result = RunCache(NotesStore(cwd=repo_root)).prune_all(dry_run=dry_run)

    if ctx.json_mode:
        data = {"dry_run": dry_run, "history": result.model_dump(mode="json")}
        if cache_result is not None:
            data["run_cache"] = cache_result.model_dump(mode="json")
        ctx.print_json(data)
        return

    _report_prune("history", result, dry_run)
    if cache_result is not None:
        _report_prune("run cache", cache_result, dry_run)


@history_app.command("health")
def history_health() -> None:
    """Check whether validation history should be pruned."""
    ctx = get_output_context()
    _, history = _open_history()

    health = history.check_health()
    if ctx.json_mode:
        ctx.emit(health)
        return

    ctx.print(f"Tree hashes with history: {health.total_notes}")
    ctx.print(f"Notes past retention age: {health.old_notes_count}")
    if health.should_warn and health.warning_message:
        ctx.warning(health.warning_message)
    else:
        ctx.print("[green]History is healthy[/green]")
