"""Git command execution for vouch.

Every git invocation in vouch goes through ``execute_git``: arguments are
always passed as a vector, never through a shell.
"""

import logging
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from ..constants import GIT_TIMEOUT

logger = logging.getLogger(__name__)


class GitError(Exception):
    """Git command failed."""


@dataclass(frozen=True)
class GitResult:
    """Captured result of one git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def execute_git(
    *args: str,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    input: str | None = None,
    timeout: float = GIT_TIMEOUT,
) -> GitResult:
    """Run git with the given arguments and capture its output.

    Args:
        *args: Git arguments (e.g. "rev-parse", "--show-toplevel")
        cwd: Working directory (defaults to the process cwd)
        env: Full environment for the child, if it must differ from ours
        input: Text passed on stdin
        timeout: Seconds before the call is abandoned

    Returns:
        GitResult with trailing whitespace stripped from stdout/stderr

    Raises:
        GitError: If git is missing or the call times out
    """
    if not args:
        raise GitError("Git command arguments must not be empty")

    cmd = ["git", *args]
    try:
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            input=input,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise GitError(f"git {args[0]} timed out after {timeout} seconds") from e
    except FileNotFoundError:
        raise GitError("git executable not found in PATH") from None

    logger.debug("git %s -> %d", " ".join(args), proc.returncode)
    return GitResult(
        args=tuple(args),
        returncode=proc.returncode,
        stdout=proc.stdout.rstrip(),
        stderr=proc.stderr.rstrip(),
    )


def run_git(
    *args: str,
    cwd: Path | None = None,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    input: str | None = None,
) -> str:
    """Run git and return its stripped stdout.

    Raises:
        GitError: If ``check`` is set and git exits non-zero
    """
    result = execute_git(*args, cwd=cwd, env=env, input=input)
    if check and not result.ok:
        detail = result.stderr or result.stdout or f"exit code {result.returncode}"
        raise GitError(f"git {' '.join(args)} failed: {detail}")
    return result.stdout.strip()


def is_inside_work_tree(cwd: Path | None = None) -> bool:
    """Return True if cwd is inside a git working tree."""
    try:
        return run_git("rev-parse", "--is-inside-work-tree", cwd=cwd) == "true"
    except GitError:
        return False


def get_repo_root(cwd: Path | None = None) -> Path:
    """Get the top-level directory of the working tree.

    Raises:
        GitError: If cwd is not inside a git repository
    """
    try:
        return Path(run_git("rev-parse", "--show-toplevel", cwd=cwd))
    except GitError:
        raise GitError("Not a git repository") from None


def get_git_dir(cwd: Path | None = None) -> Path:
    """Get the absolute .git directory, identical from any subdirectory."""
    return Path(run_git("rev-parse", "--absolute-git-dir", cwd=cwd))


def get_current_branch(cwd: Path | None = None) -> str:
    """Get the current branch name ("HEAD" when detached)."""
    return run_git("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd)


def get_head_sha(cwd: Path | None = None) -> str:
    """Get the full SHA of HEAD."""
    return run_git("rev-parse", "HEAD", cwd=cwd)
