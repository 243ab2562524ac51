"""Tests for validation history in git notes."""

import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest import mock

import pytest

from vouch.config import HistoryConfig, RetentionConfig
from vouch.core.history import HistoryStore, check_worktree_stability, truncate_output
from vouch.core.tree_hash import compute_tree_identity
from vouch.models import (
    HistoryNote,
    PhaseResult,
    PhaseStatus,
    StepResult,
    StepStatus,
    TreeHashResult,
    ValidationResult,
    ValidationRun,
)
from vouch.services.notes import NotesStore


def make_result(tree: str, passed: bool = True, summary: str | None = None, output: str = "ok") -> ValidationResult:
    step = StepResult(
        name="unit",
        command="pytest",
        status=StepStatus.PASSED if passed else StepStatus.FAILED,
        passed=passed,
        exit_code=0 if passed else 1,
        duration_secs=1.5,
        output=output,
    )
    phase = PhaseResult(
        name="tests",
        status=PhaseStatus.PASSED if passed else PhaseStatus.FAILED,
        passed=passed,
        duration_secs=1.5,
        steps=[step],
    )
    return ValidationResult(passed=passed, tree_hash=tree, phases=[phase], summary=summary)


def make_run(tree: str, timestamp: datetime, passed: bool = True, **kwargs: object) -> ValidationRun:
    return ValidationRun(
        id=f"run-{int(timestamp.timestamp() * 1000)}",
        timestamp=timestamp,
        passed=passed,
        result=make_result(tree, passed),
        **kwargs,
    )


@pytest.fixture
def store(temp_git_repo: Path) -> NotesStore:
    return NotesStore(cwd=temp_git_repo)


@pytest.fixture
def history(store: NotesStore) -> HistoryStore:
    return HistoryStore(store)


@pytest.fixture
def tree(temp_git_repo: Path, git: Callable[..., str]) -> str:
    return git(temp_git_repo, "rev-parse", "HEAD^{tree}")


@pytest.fixture
def make_object(temp_git_repo: Path, git: Callable[..., str]) -> Callable[[str], str]:
    """Write a blob so a note has an object to attach to."""

    def _make(content: str) -> str:
        path = temp_git_repo / "object.txt"
        path.write_text(content)
        return git(temp_git_repo, "hash-object", "-w", "object.txt")

    return _make


def write_note(store: NotesStore, note: HistoryNote) -> None:
    assert store.put("vouch/validate", note.tree_hash, note.model_dump_json(), force=True)


class TestRecord:
    """Tests for HistoryStore.record."""

    def test_record_and_read(self, history: HistoryStore, tree: str, git: Callable[..., str], temp_git_repo: Path) -> None:
        result = make_result(tree)
        recorded = history.record(tree, result)

        assert recorded.recorded
        note = history.read(tree)
        assert note is not None
        assert len(note.runs) == 1
        run = note.runs[0]
        assert run.id.startswith("run-")
        assert run.passed
        assert run.duration_ms == 1500
        assert run.head_commit == git(temp_git_repo, "rev-parse", "HEAD")
        assert run.branch == git(temp_git_repo, "rev-parse", "--abbrev-ref", "HEAD")
        assert run.uncommitted_changes is False
        assert run.result == result

    def test_appends_runs(self, history: HistoryStore, tree: str) -> None:
        history.record(tree, make_result(tree, passed=False))
        history.record(tree, make_result(tree, passed=True))
        note = history.read(tree)
        assert [run.passed for run in note.runs] == [False, True]
        assert note.runs[-1].passed

    def test_prunes_to_max_runs(self, history: HistoryStore, tree: str) -> None:
        """With 10 stored runs, one more keeps 10 and drops the oldest."""
        for i in range(11):
            history.record(tree, make_result(tree, summary=f"run {i}"))
        note = history.read(tree)
        assert len(note.runs) == 10
        assert [run.result.summary for run in note.runs] == [f"run {i}" for i in range(1, 11)]

    def test_custom_max_runs(self, store: NotesStore, tree: str) -> None:
        history = HistoryStore(store, HistoryConfig(max_runs_per_tree=2))
        for i in range(3):
            history.record(tree, make_result(tree, summary=str(i)))
        assert [run.result.summary for run in history.read(tree).runs] == ["1", "2"]

    def test_truncates_step_output(self, store: NotesStore, tree: str) -> None:
        history = HistoryStore(store, HistoryConfig(max_output_bytes=10))
        history.record(tree, make_result(tree, output="x" * 100))
        output = history.read(tree).runs[0].result.phases[0].steps[0].output
        assert output.startswith("x" * 10)
        assert "truncated" in output
        assert "x" * 11 not in output

    def test_write_failure_is_reported(self, history: HistoryStore, tree: str) -> None:
        """History is best-effort: failures are returned, not raised."""
        with mock.patch.object(history.store, "put", return_value=False):
            result = history.record(tree, make_result(tree))
        assert not result.recorded
        assert result.reason

    def test_invalid_tree_is_reported(self, history: HistoryStore) -> None:
        result = history.record("unknown-abc", make_result("unknown-abc"))
        assert not result.recorded
        assert "object id" in result.reason

    def test_uncommitted_changes_flag(self, history: HistoryStore, temp_git_repo: Path) -> None:
        (temp_git_repo / "dirty.txt").write_text("x")
        dirty = compute_tree_identity(temp_git_repo).hash
        history.record(dirty, make_result(dirty))
        assert history.read(dirty).runs[0].uncommitted_changes is True


class TestRead:
    """Tests for HistoryStore.read."""

    def test_missing_is_none(self, history: HistoryStore, tree: str) -> None:
        assert history.read(tree) is None
        assert not history.has_history(tree)

    def test_unreadable_note_is_none(self, history: HistoryStore, store: NotesStore, tree: str) -> None:
        store.put("vouch/validate", tree, "garbage", force=True)
        assert history.read(tree) is None

    def test_corrupt_runs_are_skipped(self, history: HistoryStore, store: NotesStore, tree: str) -> None:
        good = make_run(tree, datetime.now(UTC))
        content = json.dumps(
            {
                "tree_hash": tree,
                "runs": [{"id": "broken"}, json.loads(good.model_dump_json())],
            }
        )
        store.put("vouch/validate", tree, content, force=True)

        note = history.read(tree)
        assert note is not None
        assert [run.id for run in note.runs] == [good.id]

    def test_listing(self, history: HistoryStore, tree: str) -> None:
        history.record(tree, make_result(tree))
        assert history.list_tree_hashes() == [tree]
        assert [note.tree_hash for note in history.all_notes()] == [tree]
        assert history.has_history(tree)


class TestFindCachedRun:
    """Tests for HistoryStore.find_cached_run."""

    def test_newest_matching_run(self, history: HistoryStore, store: NotesStore, tree: str) -> None:
        now = datetime.now(UTC)
        older = make_run(tree, now - timedelta(minutes=5), passed=False)
        newer = make_run(tree, now, passed=True)
        write_note(store, HistoryNote(tree_hash=tree, runs=[older, newer]))

        found = history.find_cached_run(TreeHashResult(hash=tree))
        assert found.id == newer.id

    def test_failed_runs_are_skipped(self, history: HistoryStore, store: NotesStore, tree: str) -> None:
        """A newer failure does not hide an older pass; failures alone never hit."""
        now = datetime.now(UTC)
        older = make_run(tree, now - timedelta(minutes=5), passed=True)
        newer = make_run(tree, now, passed=False)
        write_note(store, HistoryNote(tree_hash=tree, runs=[older, newer]))

        assert history.find_cached_run(TreeHashResult(hash=tree)).id == older.id
        assert history.find_cached_run(TreeHashResult(hash=tree), passing_only=False).id == newer.id

    def test_only_failures_miss(self, history: HistoryStore, store: NotesStore, tree: str) -> None:
        write_note(store, HistoryNote(tree_hash=tree, runs=[make_run(tree, datetime.now(UTC), passed=False)]))
        assert history.find_cached_run(TreeHashResult(hash=tree)) is None

    def test_submodule_state_must_match(self, history: HistoryStore, store: NotesStore, tree: str) -> None:
        now = datetime.now(UTC)
        with_sub = make_run(tree, now, submodule_hashes={"lib": "b" * 40})
        write_note(store, HistoryNote(tree_hash=tree, runs=[with_sub]))

        assert history.find_cached_run(TreeHashResult(hash=tree)) is None
        assert history.find_cached_run(
            TreeHashResult(hash=tree, submodule_hashes={"lib": "c" * 40})
        ) is None
        assert history.find_cached_run(
            TreeHashResult(hash=tree, submodule_hashes={"lib": "b" * 40})
        ).id == with_sub.id

    def test_placeholder_never_hits(self, history: HistoryStore) -> None:
        assert history.find_cached_run(TreeHashResult(hash="unknown-x", deterministic=False)) is None


class TestPruneAndHealth:
    """Tests for pruning and health checks."""

    def test_prune_older_than(
        self, history: HistoryStore, store: NotesStore, tree: str, make_object: Callable[[str], str]
    ) -> None:
        old_tree = make_object("old content")
        now = datetime.now(UTC)
        write_note(store, HistoryNote(tree_hash=old_tree, runs=[make_run(old_tree, now - timedelta(days=40))]))
        write_note(store, HistoryNote(tree_hash=tree, runs=[make_run(tree, now)]))

        dry = history.prune_older_than(30, dry_run=True)
        assert dry.pruned_tree_hashes == [old_tree]
        assert history.has_history(old_tree)

        result = history.prune_older_than(30)
        assert result.notes_pruned == 1
        assert result.runs_pruned == 1
        assert result.notes_remaining == 1
        assert not history.has_history(old_tree)
        assert history.has_history(tree)

    def test_prune_all(self, history: HistoryStore, tree: str) -> None:
        history.record(tree, make_result(tree))
        history.record(tree, make_result(tree))
        result = history.prune_all()
        assert result.notes_pruned == 1
        assert result.runs_pruned == 2
        assert history.all_notes() == []

    def test_health_ok(self, history: HistoryStore, tree: str) -> None:
        history.record(tree, make_result(tree))
        health = history.check_health()
        assert health.total_notes == 1
        assert not health.should_warn
        assert health.warning_message is None

    def test_health_warns_on_age(self, history: HistoryStore, store: NotesStore, tree: str) -> None:
        old = datetime.now(UTC) - timedelta(days=45)
        write_note(store, HistoryNote(tree_hash=tree, runs=[make_run(tree, old)]))
        health = history.check_health()
        assert health.should_warn
        assert health.old_notes_count == 1
        assert "older than 30 days" in health.warning_message

    def test_health_warns_on_count(
        self, store: NotesStore, tree: str, make_object: Callable[[str], str]
    ) -> None:
        history = HistoryStore(store, HistoryConfig(retention=RetentionConfig(warn_after_count=1)))
        history.record(tree, make_result(tree))
        history.record(make_object("another"), make_result(tree))
        health = history.check_health()
        assert health.should_warn
        assert "grown large (2 tree hashes)" in health.warning_message


class TestStability:
    """Tests for check_worktree_stability."""

    def test_stable_tree(self, temp_git_repo: Path, tree: str) -> None:
        check = check_worktree_stability(tree, temp_git_repo)
        assert check.stable
        assert check.tree_hash_after == tree

    def test_changed_tree(self, temp_git_repo: Path, tree: str) -> None:
        (temp_git_repo / "edited.txt").write_text("changed during validation")
        check = check_worktree_stability(tree, temp_git_repo)
        assert not check.stable
        assert check.tree_hash_after != tree


class TestTruncateOutput:
    """Tests for truncate_output."""

    def test_short_output_unchanged(self) -> None:
        assert truncate_output("hello", 10) == "hello"

    def test_none_passthrough(self) -> None:
        assert truncate_output(None, 10) is None

    def test_multibyte_boundary(self) -> None:
        """Cutting inside a multibyte character drops the partial character."""
        result = truncate_output("é" * 10, 5)
        assert result.startswith("éé")
        assert "truncated" in result
