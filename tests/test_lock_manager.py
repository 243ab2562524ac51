"""Tests for lock manager."""

import os
import time
from datetime import datetime, timedelta
from pathlib import Path
from unittest import mock

import pytest

from vouch.core.lock_manager import (
    LockError,
    acquire_lock,
    get_current_lock,
    is_stale_lock,
    release_lock,
    update_heartbeat,
)
from vouch.models import Lock


@pytest.fixture
def vouch_dir(tmp_path: Path) -> Path:
    """Create temporary .vouch directory."""
    d = tmp_path / ".vouch"
    d.mkdir()
    return d


def write_foreign_lock(vouch_dir: Path, **kwargs: object) -> Lock:
    lock = Lock(pid=99999, command="vouch validate", **kwargs)
    (vouch_dir / "validate.lock").write_text(lock.model_dump_json())
    return lock


class TestAcquireLock:
    """Tests for acquire_lock function."""

    def test_acquire_creates_lock_file(self, vouch_dir: Path) -> None:
        """Acquiring lock creates lock file."""
        lock = acquire_lock(vouch_dir, "vouch validate", "a" * 40)
        assert lock.pid == os.getpid()
        assert lock.tree_hash == "a" * 40
        assert (vouch_dir / "validate.lock").exists()

    def test_acquire_creates_directory(self, tmp_path: Path) -> None:
        """A missing .vouch directory is created with its .gitignore."""
        vouch_dir = tmp_path / ".vouch"
        acquire_lock(vouch_dir, "vouch validate")
        assert (vouch_dir / "validate.lock").exists()
        assert "validate.lock" in (vouch_dir / ".gitignore").read_text()

    def test_acquire_clears_stale_lock(self, vouch_dir: Path) -> None:
        """Acquiring clears stale lock from dead process."""
        write_foreign_lock(vouch_dir)
        with mock.patch("vouch.core.lock_manager._is_pid_running", return_value=False):
            lock = acquire_lock(vouch_dir, "new command")
        assert lock.command == "new command"

    def test_acquire_fails_if_locked_by_other(self, vouch_dir: Path) -> None:
        """Cannot acquire if another process holds active lock."""
        write_foreign_lock(vouch_dir)
        with (
            mock.patch("vouch.core.lock_manager._is_pid_running", return_value=True),
            pytest.raises(LockError, match="Validation already in progress"),
        ):
            acquire_lock(vouch_dir, "new command")

    def test_acquire_replaces_corrupted_lock(self, vouch_dir: Path) -> None:
        """Unreadable lock file is cleared."""
        (vouch_dir / "validate.lock").write_text("not json")
        lock = acquire_lock(vouch_dir, "vouch validate")
        assert get_current_lock(vouch_dir) == lock

    def test_acquire_same_pid_updates_lock(self, vouch_dir: Path) -> None:
        """Same process can re-acquire/update lock."""
        acquire_lock(vouch_dir, "cmd-1")
        lock2 = acquire_lock(vouch_dir, "cmd-2")
        assert lock2.command == "cmd-2"
        assert get_current_lock(vouch_dir).command == "cmd-2"


class TestReleaseLock:
    """Tests for release_lock function."""

    def test_release_removes_lock_file(self, vouch_dir: Path) -> None:
        """Releasing lock removes lock file."""
        acquire_lock(vouch_dir, "test")
        release_lock(vouch_dir)
        assert not (vouch_dir / "validate.lock").exists()

    def test_release_ignores_other_pids_lock(self, vouch_dir: Path) -> None:
        """Cannot release lock held by different PID."""
        write_foreign_lock(vouch_dir)
        release_lock(vouch_dir)
        assert (vouch_dir / "validate.lock").exists()

    def test_release_without_lock(self, vouch_dir: Path) -> None:
        release_lock(vouch_dir)
        assert get_current_lock(vouch_dir) is None


class TestIsStale:
    """Tests for is_stale_lock function."""

    def test_dead_pid_is_stale(self) -> None:
        """Lock with dead PID is stale."""
        lock = Lock(pid=99999, command="test")
        with mock.patch("vouch.core.lock_manager._is_pid_running", return_value=False):
            assert is_stale_lock(lock) is True

    def test_old_heartbeat_is_stale(self) -> None:
        """Lock with old heartbeat is stale."""
        lock = Lock(
            pid=os.getpid(),
            command="test",
            last_heartbeat=datetime.now() - timedelta(hours=2),
        )
        assert is_stale_lock(lock, timeout_seconds=3600) is True

    def test_fresh_lock_not_stale(self) -> None:
        """Fresh lock is not stale."""
        lock = Lock(pid=os.getpid(), command="test")
        assert is_stale_lock(lock) is False


class TestUpdateHeartbeat:
    """Tests for update_heartbeat function."""

    def test_updates_heartbeat_timestamp(self, vouch_dir: Path) -> None:
        """Heartbeat timestamp is updated."""
        lock = acquire_lock(vouch_dir, "test")
        time.sleep(0.01)

        update_heartbeat(vouch_dir)
        updated = get_current_lock(vouch_dir)

        assert updated is not None
        assert updated.last_heartbeat > lock.last_heartbeat

    def test_ignores_other_pids_lock(self, vouch_dir: Path) -> None:
        """Cannot update heartbeat on lock held by different PID."""
        fake_lock = write_foreign_lock(vouch_dir)

        update_heartbeat(vouch_dir)

        current = get_current_lock(vouch_dir)
        assert current is not None
        assert current.last_heartbeat == fake_lock.last_heartbeat
