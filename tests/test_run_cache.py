"""Tests for the per-command run cache."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from vouch.core.cache_key import encode_cache_key
from vouch.core.run_cache import RunCache
from vouch.models import RunCacheEntry
from vouch.services.notes import NotesStore
from vouch.services.refs import InvalidCacheKeyError, InvalidObjectIdError


@pytest.fixture
def store(temp_git_repo: Path) -> NotesStore:
    return NotesStore(cwd=temp_git_repo)


@pytest.fixture
def cache(store: NotesStore) -> RunCache:
    return RunCache(store)


@pytest.fixture
def tree(temp_git_repo: Path, git: Callable[..., str]) -> str:
    return git(temp_git_repo, "rev-parse", "HEAD^{tree}")


def make_entry(tree: str, command: str = "npm test", **kwargs: object) -> RunCacheEntry:
    fields = {"exit_code": 0, "duration_ms": 1200, **kwargs}
    return RunCacheEntry(tree_hash=tree, cache_key=encode_cache_key(command), command=command, **fields)


class TestGetPut:
    """Tests for RunCache.get/put.

    Invariant: written entries read back under the same key only.
    """

    def test_round_trip(self, cache: RunCache, tree: str) -> None:
        entry = make_entry(tree)
        assert cache.put(tree, entry.cache_key, entry)
        assert cache.get(tree, entry.cache_key) == entry

    def test_different_key_misses(self, cache: RunCache, tree: str) -> None:
        entry = make_entry(tree)
        cache.put(tree, entry.cache_key, entry)
        assert cache.get(tree, encode_cache_key("npm run lint")) is None

    def test_put_overwrites(self, cache: RunCache, tree: str) -> None:
        """Last writer wins."""
        first = make_entry(tree, duration_ms=1)
        second = make_entry(tree, duration_ms=2)
        cache.put(tree, first.cache_key, first)
        cache.put(tree, second.cache_key, second)
        assert cache.get(tree, first.cache_key).duration_ms == 2

    def test_corrupt_entry_is_miss(self, cache: RunCache, store: NotesStore, tree: str) -> None:
        """Unparseable content is a miss, not an error."""
        key = encode_cache_key("npm test")
        store.put(f"vouch/run/{tree}/{key}", tree, "not json at all", force=True)
        assert cache.get(tree, key) is None

    def test_schema_mismatch_is_miss(self, cache: RunCache, store: NotesStore, tree: str) -> None:
        key = encode_cache_key("npm test")
        store.put(f"vouch/run/{tree}/{key}", tree, '{"unexpected": true}', force=True)
        assert cache.get(tree, key) is None

    def test_entry_is_attached_to_tree(self, cache: RunCache, store: NotesStore, tree: str) -> None:
        entry = make_entry(tree)
        cache.put(tree, entry.cache_key, entry)
        assert store.has(f"vouch/run/{tree}/{entry.cache_key}", tree)

    def test_invalid_inputs_raise(self, cache: RunCache, tree: str) -> None:
        with pytest.raises(InvalidObjectIdError):
            cache.get("HEAD", encode_cache_key("x"))
        with pytest.raises(InvalidCacheKeyError):
            cache.get(tree, "npm test")


class TestListing:
    """Tests for enumeration and pruning."""

    def test_list_for_tree_skips_bad_entries(
        self, cache: RunCache, store: NotesStore, tree: str
    ) -> None:
        good = make_entry(tree)
        cache.put(tree, good.cache_key, good)
        bad_key = encode_cache_key("broken")
        store.put(f"vouch/run/{tree}/{bad_key}", tree, "{", force=True)

        assert cache.list_for_tree(tree) == [good]
        assert sorted(cache.list_cache_keys(tree)) == sorted([good.cache_key, bad_key])

    def test_list_all_newest_first(self, cache: RunCache, tree: str) -> None:
        now = datetime.now(UTC)
        old = make_entry(tree, "make a", timestamp=now - timedelta(hours=1))
        new = make_entry(tree, "make b", timestamp=now)
        cache.put(tree, old.cache_key, old)
        cache.put(tree, new.cache_key, new)

        assert [e.command for e in cache.list_all()] == ["make b", "make a"]
        assert cache.list_tree_hashes() == [tree]

    def test_prune_all(self, cache: RunCache, tree: str) -> None:
        for command in ["a", "b"]:
            entry = make_entry(tree, command)
            cache.put(tree, entry.cache_key, entry)

        dry = cache.prune_all(dry_run=True)
        assert dry.notes_pruned == 2
        assert len(cache.list_for_tree(tree)) == 2

        result = cache.prune_all()
        assert result.notes_pruned == 2
        assert result.pruned_tree_hashes == [tree]
        assert cache.list_all() == []
