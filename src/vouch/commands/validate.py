"""Validate command implementation."""

from pathlib import Path

import typer

from ..config import (
    STATE_FILE,
    ConfigError,
    VouchConfig,
    ensure_config_dir,
    get_config_dir,
    load_config,
)
from ..core import (
    LockError,
    Scheduler,
    SchedulerConfigError,
    acquire_lock,
    lookup_cached_result,
    release_lock,
    update_heartbeat,
    validate,
)
from ..models import PhaseResult, PhaseStatus, StepResult, ValidationResult
from ..output import OutputContext, get_output_context
from ..services import GitError, get_repo_root

EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_NO_CACHE = 2
EXIT_NOT_GIT = 3
EXIT_LOCKED = 4


def write_state(vouch_dir: Path, result: ValidationResult) -> Path:
    """Mirror the last result to .vouch/state.json."""
    ensure_config_dir(vouch_dir)
    path = vouch_dir / STATE_FILE
    path.write_text(result.model_dump_json(indent=2))
    return path


def _repo_and_config(ctx: OutputContext) -> tuple[Path, VouchConfig]:
    try:
        repo_root = get_repo_root()
    except GitError:
        ctx.error("Not a git repository")
        raise typer.Exit(EXIT_NOT_GIT) from None
    try:
        config = load_config(get_config_dir(repo_root))
    except ConfigError as e:
        ctx.error(f"Invalid configuration: {e}")
        raise typer.Exit(EXIT_FAILED) from None
    return repo_root, config


def print_result(ctx: OutputContext, result: ValidationResult, from_cache: bool) -> None:
    """Print the human-readable summary of a result."""
    source = " (cached)" if from_cache else ""
    if result.passed:
        ctx.print(f"[bold green]Validation passed{source}[/bold green]")
        return
    ctx.print(f"[bold red]Validation failed{source}[/bold red]")
    if result.summary:
        ctx.print(f"  {result.summary}")
    for phase in result.phases:
        if phase.blocked_by:
            ctx.print(f"  [yellow]{phase.name}: blocked by {', '.join(phase.blocked_by)}[/yellow]")
        if phase.skipped_steps:
            ctx.print(f"  [yellow]{phase.name}: skipped {', '.join(phase.skipped_steps)}[/yellow]")
    step = next((s for s in result.all_steps() if s.name == result.failed_step), None)
    if step and step.extraction and step.extraction.errors:
        ctx.print("  Errors:")
        for error in step.extraction.errors:
            ctx.print(f"    {error.message}", style="red")
    if result.rerun_command:
        ctx.print(f"  Rerun: [cyan]{result.rerun_command}[/cyan]")


def _check_cached(ctx: OutputContext, repo_root: Path, config: VouchConfig) -> None:
    tree, cached = lookup_cached_result(repo_root, config.history)
    if cached is None:
        ctx.print_json({"cached": False, "tree_hash": tree.hash})
        ctx.print(f"No cached validation for tree {tree.hash[:12]}")
        raise typer.Exit(EXIT_NO_CACHE)
    if ctx.json_mode:
        ctx.print_json({"cached": True, **cached.model_dump(mode="json")})
    else:
        print_result(ctx, cached, from_cache=True)
    raise typer.Exit(EXIT_PASSED if cached.passed else EXIT_FAILED)


def validate_cmd(
    force: bool = typer.Option(
        False, "--force", "-f", help="Run even if a cached result exists"
    ),
    check: bool = typer.Option(
        False, "--check", help="Only report the cached status; never run steps"
    ),
) -> None:
    """Run validation phases, reusing results for an unchanged working tree."""
    ctx = get_output_context()
    repo_root, config = _repo_and_config(ctx)

    if check:
        _check_cached(ctx, repo_root, config)

    if not config.validation.phases:
        ctx.error("No validation phases configured. Run 'vouch init' to create a template.")
        raise typer.Exit(EXIT_FAILED)

    vouch_dir = get_config_dir(repo_root)

    def on_step_complete(phase: str, step: StepResult) -> None:
        mark = "[green]✓[/green]" if step.passed else "[red]✗[/red]"
        ctx.print(f"  {mark} {phase}/{step.name} ({step.duration_secs:.1f}s)")

    def on_phase_complete(phase: PhaseResult) -> None:
        if phase.status is PhaseStatus.PENDING:
            ctx.print(f"[yellow]- {phase.name}: blocked[/yellow]")
        if config.locking.enabled:
            update_heartbeat(vouch_dir)

    try:
        scheduler = Scheduler(
            config.validation,
            repo_root,
            on_phase_start=lambda name: ctx.print(f"[bold]{name}[/bold]"),
            on_step_complete=on_step_complete,
            on_phase_complete=on_phase_complete,
        )
    except SchedulerConfigError as e:
        ctx.error(f"Invalid configuration: {e}")
        raise typer.Exit(EXIT_FAILED) from None

    if config.locking.enabled:
        try:
            acquire_lock(vouch_dir, "validate")
        except LockError as e:
            ctx.error(str(e))
            raise typer.Exit(EXIT_LOCKED) from None

    try:
        outcome = validate(
            config.validation,
            repo_root,
            force=force,
            history_config=config.history,
            scheduler=scheduler,
        )
    finally:
        if config.locking.enabled:
            release_lock(vouch_dir)

    write_state(vouch_dir, outcome.result)

    if ctx.json_mode:
        ctx.print_json(
            {
                "from_cache": outcome.from_cache,
                "recorded": bool(outcome.record and outcome.record.recorded),
                **outcome.result.model_dump(mode="json"),
            }
        )
    else:
        print_result(ctx, outcome.result, outcome.from_cache)
        if outcome.flakiness_warning:
            ctx.warning(outcome.flakiness_warning)
        if not outcome.stable:
            ctx.warning("Working tree changed during validation; result was not recorded")
        elif outcome.record and not outcome.record.recorded:
            ctx.warning(f"History not recorded: {outcome.record.reason}")

    raise typer.Exit(EXIT_PASSED if outcome.result.passed else EXIT_FAILED)
