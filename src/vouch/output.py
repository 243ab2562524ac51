"""Output formatting for the vouch CLI."""

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel
from rich.console import Console


@dataclass
class OutputContext:
    """Where and how command results are rendered."""

    console: Console
    json_mode: bool = False

    def print(self, message: str, style: str | None = None) -> None:
        """Print a human-readable line; suppressed in JSON mode."""
        if not self.json_mode:
            self.console.print(message, style=style)

    def print_json(self, data: dict[str, Any] | list[Any]) -> None:
        """Print a JSON document to stdout in JSON mode."""
        if self.json_mode:
            print(json.dumps(data, indent=2, default=str))

    def emit(self, model: BaseModel, message: str = "") -> None:
        """Render a pydantic model as JSON, or print the summary message."""
        if self.json_mode:
            self.print_json(model.model_dump(mode="json"))
        elif message:
            self.console.print(message)

    def error(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Print an error in the active format."""
        if self.json_mode:
            self.print_json({"error": message, **(data or {})})
        else:
            self.console.print(f"[red]Error: {message}[/red]")

    def warning(self, message: str) -> None:
        """Print a warning; warnings never go to stdout in JSON mode."""
        if not self.json_mode:
            self.console.print(f"[yellow]{message}[/yellow]")

    def success(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Print a success message in the active format."""
        if self.json_mode:
            self.print_json({"success": message, **(data or {})})
        else:
            self.console.print(f"[green]{message}[/green]")


# Set by the CLI main callback
_ctx: OutputContext | None = None


def get_output_context() -> OutputContext:
    """Get the current output context.

    Returns a default OutputContext if the CLI has not initialized one.
    """
    if _ctx is None:
        return OutputContext(Console())
    return _ctx


def set_output_context(ctx: OutputContext) -> None:
    """Set the global output context. Called by the CLI main callback."""
    global _ctx
    _ctx = ctx
