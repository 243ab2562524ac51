"""vouch CLI: validation caching and history in git notes."""

import typer

from vouch import __version__

from .commands import history_app, init, run_cmd, state, validate_cmd
from .logging import configure_logging
from .output import OutputContext, set_output_context


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"vouch {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="vouch",
    help="Run project checks once per working tree and remember the results in git notes",
    no_args_is_help=True,
)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v, -vv)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format for automation",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
) -> None:
    """vouch - cached validation for git working trees."""
    console = configure_logging(verbosity=verbose, quiet=quiet, no_color=no_color)
    set_output_context(OutputContext(console=console, json_mode=json_output))


app.command()(init)
app.command("validate")(validate_cmd)
app.command("run")(run_cmd)
app.command()(state)
app.add_typer(history_app, name="history")


if __name__ == "__main__":
    app()
