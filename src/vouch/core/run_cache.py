"""Per-command result cache stored in git notes.

Each entry lives under its own notes ref,
``refs/notes/vouch/run/<tree_hash>/<cache_key>``, attached to the tree object
it describes. A per-entry ref keeps concurrent writers for different commands
from contending on one notes tree.
"""

import logging
import re

from pydantic import ValidationError

from ..constants import RUN_CACHE_NOTES_PREFIX
from ..models import PruneResult, RunCacheEntry
from ..services.notes import NotesStore
from ..services.refs import (
    UnsafeArgumentError,
    validate_cache_key,
    validate_object_id,
)

logger = logging.getLogger(__name__)


class RunCache:
    """Run cache backed by a NotesStore."""

    def __init__(self, store: NotesStore, prefix: str = RUN_CACHE_NOTES_PREFIX) -> None:
        self.store = store
        self.prefix = prefix
        self._ref_pattern = re.compile(
            rf"^refs/notes/{re.escape(prefix)}/(?P<tree>[^/]+)/(?P<key>[^/]+)$"
        )

    def ref_for(self, tree_hash: str, cache_key: str) -> str:
        validate_object_id(tree_hash)
        validate_cache_key(cache_key)
        return f"{self.prefix}/{tree_hash}/{cache_key}"

    def get(self, tree_hash: str, cache_key: str) -> RunCacheEntry | None:
        """Look up an entry. Unreadable or mismatched content is a miss."""
        content = self.store.get(self.ref_for(tree_hash, cache_key), tree_hash)
        if content is None:
            return None
        try:
            entry = RunCacheEntry.model_validate_json(content)
        except ValidationError as e:
            logger.debug("Ignoring corrupt run cache entry %s/%s: %s", tree_hash, cache_key, e)
            return None
        if entry.tree_hash != tree_hash or entry.cache_key != cache_key:
            logger.debug("Ignoring run cache entry stored under the wrong key")
            return None
        return entry

    def put(self, tree_hash: str, cache_key: str, entry: RunCacheEntry) -> bool:
        """Store an entry, replacing any previous one for the same key."""
        ref = self.ref_for(tree_hash, cache_key)
        if entry.tree_hash != tree_hash or entry.cache_key != cache_key:
            entry = entry.model_copy(update={"tree_hash": tree_hash, "cache_key": cache_key})
        ok = self.store.put(ref, tree_hash, entry.model_dump_json(indent=2), force=True)
        if not ok:
            logger.warning("Failed to write run cache entry for %s", entry.command)
        return ok

    def list_cache_keys(self, tree_hash: str) -> list[str]:
        """Cache keys stored for one tree identity."""
        validate_object_id(tree_hash)
        keys = []
        for ref in self.store.list_refs(f"{self.prefix}/{tree_hash}"):
            match = self._ref_pattern.match(ref)
            if match and match.group("tree") == tree_hash:
                keys.append(match.group("key"))
        return keys

    def list_for_tree(self, tree_hash: str) -> list[RunCacheEntry]:
        """All readable entries for a tree identity; bad entries are skipped."""
        entries = []
        for cache_key in self.list_cache_keys(tree_hash):
            try:
                entry = self.get(tree_hash, cache_key)
            except UnsafeArgumentError as e:
                logger.warning("Skipping run cache ref with invalid key: %s", e)
                continue
            if entry is not None:
                entries.append(entry)
        return entries

    def list_tree_hashes(self) -> list[str]:
        """Tree identities that have at least one cached command."""
        seen: dict[str, None] = {}
        for ref in self.store.list_refs(self.prefix):
            match = self._ref_pattern.match(ref)
            if match:
                seen.setdefault(match.group("tree"), None)
        return list(seen)

    def list_all(self) -> list[RunCacheEntry]:
        """Every cached entry, newest first."""
        entries = []
        for tree_hash in self.list_tree_hashes():
            try:
                entries.extend(self.list_for_tree(tree_hash))
            except UnsafeArgumentError as e:
                logger.warning("Skipping run cache tree: %s", e)
        return sorted(entries, key=lambda e: e.timestamp, reverse=True)

    def prune_all(self, dry_run: bool = False) -> PruneResult:
        """Delete every cached entry. Each entry counts as one note."""
        pruned = 0
        pruned_trees = []
        for tree_hash in self.list_tree_hashes():
            try:
                keys = self.list_cache_keys(tree_hash)
            except UnsafeArgumentError as e:
                logger.warning("Skipping run cache tree: %s", e)
                continue
            if not keys:
                continue
            if dry_run:
                pruned += len(keys)
            else:
                pruned += self.store.remove_all(f"{self.prefix}/{tree_hash}")
            pruned_trees.append(tree_hash)
        return PruneResult(
            notes_pruned=pruned,
            runs_pruned=pruned,
            notes_remaining=0,
            pruned_tree_hashes=pruned_trees,
        )
