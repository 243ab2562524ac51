"""State command: show the last mirrored validation result."""

import typer
from pydantic import ValidationError

from ..config import STATE_FILE, get_config_dir
from ..models import ValidationResult
from ..output import get_output_context
from ..services import GitError, get_repo_root
from .validate import print_result


def state() -> None:
    """Show the result of the last validation in this checkout."""
    ctx = get_output_context()

    try:
        repo_root = get_repo_root()
    except GitError:
        ctx.error("Not a git repository")
        raise typer.Exit(3) from None

    state_path = get_config_dir(repo_root) / STATE_FILE
    if not state_path.exists():
        ctx.error("No validation state found. Run 'vouch validate' first.")
        raise typer.Exit(1)

    try:
        result = ValidationResult.model_validate_json(state_path.read_text())
    except ValidationError as e:
        ctx.error(f"Corrupt state file {state_path}: {e.error_count()} error(s)")
        raise typer.Exit(1) from None

    if ctx.json_mode:
        ctx.emit(result)
        return

    ctx.print(f"[bold]Tree:[/bold] {result.tree_hash}")
    ctx.print(f"[bold]Validated:[/bold] {result.timestamp:%Y-%m-%d %H:%M:%S}")
    for phase in result.phases:
        ctx.print(f"  {phase.name}: {phase.status.value} ({phase.duration_secs:.1f}s)")
    print_result(ctx, result, from_cache=False)
