"""Init command implementation."""

import typer

from ..config import CONFIG_FILE, ensure_config_dir, get_config_dir, write_config_template
from ..output import get_output_context
from ..services import GitError, get_repo_root


def init() -> None:
    """Initialize vouch in the current repository."""
    ctx = get_output_context()

    try:
        repo_root = get_repo_root()
    except GitError:
        ctx.error("Not a git repository")
        raise typer.Exit(3) from None

    vouch_dir = get_config_dir(repo_root)
    config_path = vouch_dir / CONFIG_FILE

    if config_path.exists():
        ctx.warning(f"Config already exists: {config_path}")
        ensure_config_dir(vouch_dir)
    else:
        write_config_template(vouch_dir)
        ctx.print(f"[green]Created config template:[/green] {config_path}")

    ctx.success("vouch initialized", {"config": str(config_path)})
