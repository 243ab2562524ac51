"""Deterministic working-copy identity.

The identity is the id of a git tree object built from a private copy of the
index with every tracked, modified and untracked (but not ignored) file
staged. ``git write-tree`` hashes content only, so the same working copy
always yields the same id. Throwaway commits are never used: they embed
timestamps.

The real index is never touched. All staging happens in a temporary index
file that is removed on every exit path.
"""

import contextlib
import logging
import os
import re
import shutil
import time
import uuid
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from ..constants import STALE_INDEX_AGE_SECONDS
from ..models import TreeHashResult, combine_identities
from ..services.git import GitError, execute_git, get_git_dir, is_inside_work_tree, run_git

logger = logging.getLogger(__name__)

TEMP_INDEX_PREFIX = "vouch-temp-index-"
_TEMP_INDEX_PATTERN = re.compile(rf"^{TEMP_INDEX_PREFIX}(\d+)(?:-[0-9a-f]+)?$")
_SUBMODULE_LINE = re.compile(r"^([ +\-U])([0-9a-f]+)\s+(\S+)")


class TreeHashError(Exception):
    """Tree identity could not be computed inside a git repository."""


@dataclass(frozen=True)
class ComponentIdentity:
    """One repository root taking part in a composite identity."""

    path: str
    tree_hash: str


@dataclass(frozen=True)
class SubmoduleInfo:
    """Entry parsed from ``git submodule status``.

    status is ' ' (clean), '+' (checked-out commit differs), '-' (not
    initialized) or 'U' (merge conflict).
    """

    path: str
    status: str


def placeholder_identity() -> TreeHashResult:
    """Identity used outside git. Unique per call, so it never hits a cache."""
    return TreeHashResult(hash=f"unknown-{uuid.uuid4().hex}", deterministic=False)


def _is_pid_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
        return True
    except OSError:
        return False


def cleanup_stale_indexes(git_dir: Path, max_age: float = STALE_INDEX_AGE_SECONDS) -> int:
    """Remove temporary index files abandoned by crashed processes.

    A file is stale when it is older than ``max_age`` seconds and the PID in
    its name is no longer running.

    Returns:
        Number of files removed
    """
    try:
        entries = list(git_dir.iterdir())
    except (FileNotFoundError, NotADirectoryError):
        return 0

    removed = 0
    now = time.time()
    for path in entries:
        match = _TEMP_INDEX_PATTERN.match(path.name)
        if not match:
            continue
        try:
            age = now - path.stat().st_mtime
        except FileNotFoundError:
            continue
        pid = int(match.group(1))
        if age < max_age or _is_pid_running(pid):
            continue
        try:
            path.unlink()
        except OSError as e:
            logger.warning("Failed to clean up stale temp index %s: %s", path.name, e)
            continue
        removed += 1
        logger.warning(
            "Cleaned up stale temp index from PID %d (%ds old, process not running)",
            pid,
            int(age),
        )
    return removed


@contextlib.contextmanager
def temporary_index(git_dir: Path) -> Iterator[dict[str, str]]:
    """Yield an environment whose GIT_INDEX_FILE is a private index copy.

    The copy starts as the current index (if any) and is deleted on exit,
    whether or not the body raised.
    """
    temp_index = git_dir / f"{TEMP_INDEX_PREFIX}{os.getpid()}-{uuid.uuid4().hex[:8]}"
    real_index = git_dir / "index"
    try:
        if real_index.exists():
            shutil.copyfile(real_index, temp_index)
        yield {**os.environ, "GIT_INDEX_FILE": str(temp_index)}
    finally:
        temp_index.unlink(missing_ok=True)


def write_working_tree(repo_root: Path, git_dir: Path) -> str:
    """Stage the full working copy into a temporary index and write its tree.

    Raises:
        TreeHashError: If staging or writing the tree fails
    """
    with temporary_index(git_dir) as env:
        try:
            added = execute_git("add", "--all", cwd=repo_root, env=env)
            if not added.ok and "nothing" not in added.stderr:
                raise TreeHashError(f"git add failed: {added.stderr}")
            written = execute_git("write-tree", cwd=repo_root, env=env)
        except GitError as e:
            raise TreeHashError(str(e)) from e
        if not written.ok:
            raise TreeHashError(f"git write-tree failed: {written.stderr}")
        return written.stdout.strip()


def list_submodules(repo_root: Path) -> list[SubmoduleInfo]:
    """Parse ``git submodule status``. Empty if there are none or git fails."""
    try:
        result = execute_git("submodule", "status", cwd=repo_root)
    except GitError:
        return []
    if not result.ok:
        return []

    submodules = []
    for line in result.stdout.splitlines():
        match = _SUBMODULE_LINE.match(line)
        if match:
            submodules.append(SubmoduleInfo(path=match.group(3), status=match.group(1)))
    return submodules


def compute_tree_identity(cwd: Path | None = None) -> TreeHashResult:
    """Compute the identity of the working copy containing ``cwd``.

    Covers staged, unstaged and untracked content; ignored files are left out.
    Initialized submodules are hashed recursively and reported separately.

    Returns:
        TreeHashResult; a non-deterministic placeholder outside git

    Raises:
        TreeHashError: If git fails inside a repository
    """
    if not is_inside_work_tree(cwd):
        logger.warning("Not inside a git working copy; results will not be cached")
        return placeholder_identity()

    try:
        git_dir = get_git_dir(cwd)
        repo_root = Path(run_git("rev-parse", "--show-toplevel", cwd=cwd))
    except GitError as e:
        raise TreeHashError(f"Failed to locate repository: {e}") from e

    cleanup_stale_indexes(git_dir)
    parent_hash = write_working_tree(repo_root, git_dir)

    submodule_hashes: dict[str, str] = {}
    for sub in sorted(list_submodules(repo_root), key=lambda s: s.path):
        if sub.status == "-":
            continue
        try:
            submodule_hashes[sub.path] = compute_tree_identity(repo_root / sub.path).hash
        except TreeHashError as e:
            logger.warning("Failed to hash submodule %s: %s", sub.path, e)

    return TreeHashResult(hash=parent_hash, submodule_hashes=submodule_hashes or None)


def compute_composite_identity(components: list[ComponentIdentity]) -> str:
    """Combine several repository identities into one, ignoring input order.

    Raises:
        ValueError: On empty input or a repeated path
    """
    mapping: dict[str, str] = {}
    for component in components:
        if component.path in mapping:
            raise ValueError(f"Duplicate component path: {component.path}")
        mapping[component.path] = component.tree_hash
    return combine_identities(mapping)


def get_head_tree_hash(cwd: Path | None = None) -> str:
    """Tree id of the HEAD commit (committed state only).

    Raises:
        TreeHashError: If HEAD does not exist
    """
    try:
        return run_git("rev-parse", "HEAD^{tree}", cwd=cwd)
    except GitError as e:
        raise TreeHashError(f"Failed to get HEAD tree hash: {e}") from e


def has_working_tree_changes(cwd: Path | None = None) -> bool:
    """True if the working copy differs from HEAD, or if that is unknowable."""
    try:
        current = compute_tree_identity(cwd)
        if not current.deterministic:
            return True
        return current.hash != get_head_tree_hash(cwd)
    except TreeHashError:
        return True
