"""Single step execution.

Each step runs through the shell in its own process group so that a timeout
kills the command and everything it spawned.
"""

import logging
import os
import signal
import subprocess
import sys
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from rich.text import Text

from ..config import StepConfig
from ..constants import PROCESS_KILL_GRACE, STEP_TIMEOUT, TIMEOUT_EXIT_CODE
from ..models import StepStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepOutcome:
    """Raw result of running one command."""

    status: StepStatus
    exit_code: int
    output: str
    duration_secs: float

    @property
    def passed(self) -> bool:
        return self.status is StepStatus.PASSED


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences."""
    return Text.from_ansi(text).plain


def _kill_process_group(process: subprocess.Popen[str], grace: float = PROCESS_KILL_GRACE) -> None:
    """Terminate a process and its whole group, escalating to SIGKILL.

    SIGKILL follows the grace period even if the shell already exited;
    descendants that ignore SIGTERM would otherwise hold the output pipe.
    """
    if sys.platform == "win32":
        if process.poll() is None:
            process.kill()
        return

    try:
        pgid = os.getpgid(process.pid)
    except (ProcessLookupError, PermissionError):
        # Leader already reaped; with start_new_session the group id is its pid
        pgid = process.pid

    try:
        os.killpg(pgid, signal.SIGTERM)
    except (ProcessLookupError, PermissionError):
        pass
    try:
        process.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        pass
    try:
        os.killpg(pgid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass
    if process.poll() is None:
        process.kill()


def execute_command(
    command: str,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> StepOutcome:
    """Run a shell command and capture combined stdout and stderr.

    Args:
        command: Shell command line
        cwd: Working directory
        env: Variables added to the inherited environment
        timeout: Seconds before the process group is killed

    Returns:
        StepOutcome; a command that cannot be started is a failed outcome
    """
    timeout = timeout or STEP_TIMEOUT
    child_env = {**os.environ, **env} if env else None
    start = time.monotonic()

    try:
        process = subprocess.Popen(
            command,
            shell=True,
            cwd=cwd,
            env=child_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            start_new_session=sys.platform != "win32",
        )
    except OSError as e:
        logger.debug("Failed to start %r: %s", command, e)
        return StepOutcome(
            status=StepStatus.FAILED,
            exit_code=127,
            output=f"Failed to start command: {e}",
            duration_secs=round(time.monotonic() - start, 1),
        )

    try:
        stdout, _ = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_process_group(process)
        try:
            stdout, _ = process.communicate(timeout=PROCESS_KILL_GRACE)
        except subprocess.TimeoutExpired:
            # A descendant that left the group still holds the pipe
            logger.debug("Output pipe still open after killing %r", command)
            stdout = ""
        output = strip_ansi(stdout or "")
        output += f"\n[vouch] Command timed out after {timeout:g} seconds"
        return StepOutcome(
            status=StepStatus.TIMED_OUT,
            exit_code=TIMEOUT_EXIT_CODE,
            output=output,
            duration_secs=round(time.monotonic() - start, 1),
        )

    exit_code = process.returncode
    return StepOutcome(
        status=StepStatus.PASSED if exit_code == 0 else StepStatus.FAILED,
        exit_code=exit_code,
        output=strip_ansi(stdout or ""),
        duration_secs=round(time.monotonic() - start, 1),
    )


def run_step(
    step: StepConfig,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    default_timeout: float | None = None,
) -> StepOutcome:
    """Run a configured step.

    The step's own timeout wins over ``default_timeout``; its ``cwd`` is
    resolved against ``cwd`` and its ``env`` layered over ``env``.
    """
    workdir = cwd / step.cwd if step.cwd else cwd
    merged_env = {**(env or {}), **step.env}
    timeout = step.timeout or default_timeout
    logger.debug("Running step %s: %s", step.name, step.command)
    return execute_command(step.command, workdir, env=merged_env or None, timeout=timeout)
