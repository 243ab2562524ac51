"""Tests for the git notes store."""

from collections.abc import Callable
from pathlib import Path

import pytest

from vouch.services.notes import NotesStore
from vouch.services.refs import InvalidObjectIdError, InvalidRefError, NamespaceError


@pytest.fixture
def store(temp_git_repo: Path) -> NotesStore:
    return NotesStore(cwd=temp_git_repo)


@pytest.fixture
def tree(temp_git_repo: Path, git: Callable[..., str]) -> str:
    return git(temp_git_repo, "rev-parse", "HEAD^{tree}")


class TestPutGet:
    """Tests for put/get/has/remove."""

    def test_round_trip(self, store: NotesStore, tree: str) -> None:
        """Content written under a ref reads back unchanged."""
        assert store.put("vouch/test", tree, '{"a": 1}')
        assert store.get("vouch/test", tree) == '{"a": 1}'
        assert store.has("vouch/test", tree)

    def test_missing_note_is_none(self, store: NotesStore, tree: str) -> None:
        assert store.get("vouch/test", tree) is None
        assert not store.has("vouch/test", tree)

    def test_put_without_force_refuses_overwrite(self, store: NotesStore, tree: str) -> None:
        assert store.put("vouch/test", tree, "first")
        assert not store.put("vouch/test", tree, "second")
        assert store.get("vouch/test", tree) == "first"

    def test_put_with_force_overwrites(self, store: NotesStore, tree: str) -> None:
        """Last writer wins with force."""
        store.put("vouch/test", tree, "first")
        assert store.put("vouch/test", tree, "second", force=True)
        assert store.get("vouch/test", tree) == "second"

    def test_remove(self, store: NotesStore, tree: str) -> None:
        store.put("vouch/test", tree, "x")
        assert store.remove("vouch/test", tree)
        assert not store.remove("vouch/test", tree)

    def test_invalid_object_id_raises(self, store: NotesStore) -> None:
        """Symbolic names never reach git."""
        with pytest.raises(InvalidObjectIdError):
            store.get("vouch/test", "HEAD")

    def test_invalid_ref_raises(self, store: NotesStore, tree: str) -> None:
        with pytest.raises(InvalidRefError):
            store.put("vouch/$(id)", tree, "x")

    def test_outside_repo_reports_failure(self, tmp_path: Path, tree: str) -> None:
        """Git failures are reported as False/None, not raised."""
        outside = NotesStore(cwd=tmp_path)
        assert outside.put("vouch/test", tree, "x") is False
        assert outside.get("vouch/test", tree) is None


class TestListing:
    """Tests for list_notes, list_refs and remove_all."""

    def test_list_returns_object_and_content(self, store: NotesStore, tree: str) -> None:
        store.put("vouch/test", tree, "hello")
        assert store.list_notes("vouch/test") == [(tree, "hello")]

    def test_list_empty_ref(self, store: NotesStore) -> None:
        assert store.list_notes("vouch/nothing") == []

    def test_list_refs_and_remove_all(self, store: NotesStore, tree: str) -> None:
        """remove_all deletes every ref below the prefix."""
        store.put("vouch/run/aaaa/0000000000000001", tree, "1")
        store.put("vouch/run/aaaa/0000000000000002", tree, "2")
        store.put("vouch/validate", tree, "history")

        refs = store.list_refs("vouch/run")
        assert sorted(refs) == [
            "refs/notes/vouch/run/aaaa/0000000000000001",
            "refs/notes/vouch/run/aaaa/0000000000000002",
        ]

        assert store.remove_all("vouch/run") == 2
        assert store.list_refs("vouch/run") == []
        assert store.get("vouch/validate", tree) == "history"

    @pytest.mark.parametrize("prefix", ["vouch", "refs/notes/vouch", "other", "refs/heads"])
    def test_remove_all_refuses_outside_namespace(self, store: NotesStore, prefix: str) -> None:
        """Bulk deletion is confined to refs strictly below the root."""
        with pytest.raises(NamespaceError):
            store.remove_all(prefix)
