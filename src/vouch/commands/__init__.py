"""CLI command implementations for vouch.

This package contains the implementation of each CLI command,
separated from the CLI framework setup in cli.py.
"""

from .history import history_app
from .init import init
from .run import run_cmd
from .state import state
from .validate import validate_cmd

__all__ = [
    "history_app",
    "init",
    "run_cmd",
    "state",
    "validate_cmd",
]
