"""Run command: execute one command with result caching."""

from pathlib import Path

import typer

from ..core import run_cached
from ..output import get_output_context


def run_cmd(
    command: str = typer.Argument(..., help="Shell command to run"),
    force: bool = typer.Option(False, "--force", "-f", help="Ignore any cached result"),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", min=0.1, help="Seconds before the command is killed"
    ),
) -> None:
    """Run a command, skipping it if it already passed on this working tree."""
    ctx = get_output_context()

    try:
        outcome = run_cached(command, Path.cwd(), force=force, timeout=timeout)
    except ValueError as e:
        ctx.error(str(e))
        raise typer.Exit(1) from None

    entry = outcome.entry
    if ctx.json_mode:
        ctx.print_json({"from_cache": outcome.from_cache, **entry.model_dump(mode="json")})
    elif outcome.from_cache:
        ctx.print(
            f"[green]✓ Cached:[/green] '{entry.command}' passed at "
            f"{entry.timestamp:%Y-%m-%d %H:%M} ({entry.duration_ms} ms)"
        )
    else:
        if outcome.output:
            ctx.console.print(outcome.output, markup=False, highlight=False)
        if entry.exit_code != 0 and entry.extraction and entry.extraction.summary:
            ctx.print(f"[red]{entry.extraction.summary}[/red]")

    raise typer.Exit(entry.exit_code)
