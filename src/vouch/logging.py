"""Logging configuration for the vouch CLI."""

import logging
from enum import IntEnum

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "vouch"


class LogLevel(IntEnum):
    """Log levels selected by CLI flags."""

    QUIET = logging.WARNING
    NORMAL = logging.INFO
    VERBOSE = logging.DEBUG


def resolve_level(verbosity: int = 0, quiet: bool = False, debug: bool = False) -> int:
    """Map CLI flags to a logging level.

    Precedence is quiet > debug > verbosity. Without flags only warnings from
    the cache and history layers reach the terminal at INFO.
    """
    if quiet:
        return LogLevel.QUIET
    if debug or verbosity >= 1:
        return LogLevel.VERBOSE
    return LogLevel.NORMAL


def configure_logging(
    verbosity: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    debug: bool = False,
) -> Console:
    """Configure the ``vouch`` logger hierarchy for CLI use.

    Args:
        verbosity: Number of -v flags (0=normal, 1+=debug)
        quiet: Only show warnings and errors
        no_color: Disable colored output
        debug: Same as -v, also adds timestamps and source locations

    Returns:
        Rich console writing to stderr, shared by log records and CLI output
    """
    level = resolve_level(verbosity, quiet, debug)
    detailed = debug or verbosity >= 2

    console = Console(
        stderr=True,
        force_terminal=None if not no_color else False,
        no_color=no_color,
    )

    handler = RichHandler(
        console=console,
        show_time=detailed,
        show_path=detailed,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger(PACKAGE_LOGGER)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    return console
