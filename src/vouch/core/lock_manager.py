"""Lock manager for local validation concurrency control.

Provides PID-based file locking so that two validations of the same
repository do not run at once. Includes stale lock detection for crash
recovery.

Uses atomic file creation (O_CREAT | O_EXCL) to prevent TOCTOU races.
"""

import contextlib
import os
from datetime import datetime, timedelta
from pathlib import Path

from pydantic import ValidationError

from ..config import LOCK_FILE, ensure_config_dir
from ..models import Lock

STALE_TIMEOUT_SECONDS = 3600  # 1 hour
MAX_LOCK_RETRIES = 3


class LockError(Exception):
    """Error acquiring or managing lock."""


def _lock_path(vouch_dir: Path) -> Path:
    return vouch_dir / LOCK_FILE


def _is_pid_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
        return True
    except OSError:
        return False


def get_current_lock(vouch_dir: Path) -> Lock | None:
    """Get current lock if it exists and parses.

    Args:
        vouch_dir: Path to .vouch directory

    Returns:
        Lock if a readable lock file exists, None otherwise
    """
    lock_path = _lock_path(vouch_dir)
    try:
        return Lock.model_validate_json(lock_path.read_text())
    except (FileNotFoundError, ValidationError):
        return None


def is_stale_lock(lock: Lock, timeout_seconds: int = STALE_TIMEOUT_SECONDS) -> bool:
    """Check if lock is stale (PID dead or heartbeat too old)."""
    if not _is_pid_running(lock.pid):
        return True
    return datetime.now() - lock.last_heartbeat > timedelta(seconds=timeout_seconds)


def _try_atomic_create(lock_path: Path, lock: Lock) -> bool:
    """Create the lock file only if it does not exist yet."""
    try:
        fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError:
        return False
    try:
        os.write(fd, lock.model_dump_json(indent=2).encode())
    finally:
        os.close(fd)
    return True


def acquire_lock(vouch_dir: Path, command: str, tree_hash: str | None = None) -> Lock:
    """Acquire the validation lock.

    Args:
        vouch_dir: Path to .vouch directory (created if missing)
        command: Command acquiring the lock
        tree_hash: Tree identity about to be validated, if known

    Returns:
        The acquired Lock

    Raises:
        LockError: If another live process holds the lock
    """
    ensure_config_dir(vouch_dir)
    lock_path = _lock_path(vouch_dir)
    lock = Lock(pid=os.getpid(), tree_hash=tree_hash, command=command)

    for _ in range(MAX_LOCK_RETRIES):
        if _try_atomic_create(lock_path, lock):
            return lock

        existing = get_current_lock(vouch_dir)
        if existing is None:
            # Corrupted lock file; clear it and retry
            with contextlib.suppress(FileNotFoundError):
                lock_path.unlink()
            continue

        if existing.pid == os.getpid():
            lock_path.write_text(lock.model_dump_json(indent=2))
            return lock

        if is_stale_lock(existing):
            with contextlib.suppress(FileNotFoundError):
                lock_path.unlink()
            continue

        raise LockError(
            f"Validation already in progress (PID {existing.pid}, command: {existing.command})"
        )

    raise LockError("Failed to acquire lock after multiple attempts")


def release_lock(vouch_dir: Path) -> None:
    """Release lock if owned by current process."""
    existing = get_current_lock(vouch_dir)
    if existing and existing.pid == os.getpid():
        _lock_path(vouch_dir).unlink(missing_ok=True)


def update_heartbeat(vouch_dir: Path) -> None:
    """Refresh the heartbeat of a lock owned by this process."""
    existing = get_current_lock(vouch_dir)
    if existing and existing.pid == os.getpid():
        existing.last_heartbeat = datetime.now()
        _lock_path(vouch_dir).write_text(existing.model_dump_json(indent=2))

