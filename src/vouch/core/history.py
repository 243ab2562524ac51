"""Validation history stored in git notes.

One note per tree identity under the history ref (``vouch/validate`` by
default), attached to the tree object. Each note holds the newest
``max_runs_per_tree`` runs, oldest first. History is best-effort: write
failures are reported in the returned RecordResult and never fail a
validation.
"""

import json
import logging
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import ValidationError

from ..config import HistoryConfig
from ..models import (
    HealthCheckResult,
    HistoryNote,
    PruneResult,
    RecordResult,
    StabilityCheck,
    TreeHashResult,
    ValidationResult,
    ValidationRun,
    combine_identities,
)
from ..services.git import GitError, get_current_branch, get_head_sha
from ..services.notes import NotesStore
from ..services.refs import UnsafeArgumentError
from .tree_hash import TreeHashError, compute_tree_identity, get_head_tree_hash

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n... [output truncated]"


def truncate_output(output: str | None, max_bytes: int) -> str | None:
    """Cut output to at most ``max_bytes`` UTF-8 bytes plus a marker."""
    if output is None:
        return None
    encoded = output.encode()
    if len(encoded) <= max_bytes:
        return output
    return encoded[:max_bytes].decode(errors="ignore") + TRUNCATION_MARKER


def _truncate_result(result: ValidationResult, max_bytes: int) -> ValidationResult:
    phases = []
    for phase in result.phases:
        steps = [
            step.model_copy(update={"output": truncate_output(step.output, max_bytes)})
            for step in phase.steps
        ]
        phases.append(phase.model_copy(update={"steps": steps}))
    return result.model_copy(update={"phases": phases})


def _branch_name(cwd: Path | None) -> str:
    try:
        branch = get_current_branch(cwd)
    except GitError:
        return "unknown"
    return "detached" if branch == "HEAD" else branch


def _head_commit(cwd: Path | None) -> str:
    try:
        return get_head_sha(cwd)
    except GitError:
        return "none"


def _new_run_id() -> str:
    return f"run-{int(time.time() * 1000)}"


def _submodules_match(stored: dict[str, str] | None, current: dict[str, str] | None) -> bool:
    if not stored and not current:
        return True
    if not stored or not current:
        return False
    return combine_identities(stored) == combine_identities(current)


class HistoryStore:
    """Per-tree validation history backed by a NotesStore."""

    def __init__(self, store: NotesStore, config: HistoryConfig | None = None) -> None:
        self.store = store
        self.config = config or HistoryConfig()

    @property
    def ref(self) -> str:
        return self.config.notes_ref

    def record(
        self,
        tree_hash: str,
        result: ValidationResult,
        submodule_hashes: dict[str, str] | None = None,
    ) -> RecordResult:
        """Append a run for ``tree_hash`` and drop the oldest beyond the limit.

        Never raises; any failure is described in the returned RecordResult.
        """
        try:
            note = self.read(tree_hash) or HistoryNote(tree_hash=tree_hash)
        except UnsafeArgumentError as e:
            return RecordResult(recorded=False, tree_hash=tree_hash, reason=str(e))

        cwd = self.store.cwd
        run = ValidationRun(
            id=_new_run_id(),
            timestamp=datetime.now(UTC),
            duration_ms=result.duration_ms,
            passed=result.passed,
            branch=_branch_name(cwd),
            head_commit=_head_commit(cwd),
            uncommitted_changes=self._has_uncommitted_changes(tree_hash),
            submodule_hashes=submodule_hashes,
            result=_truncate_result(result, self.config.max_output_bytes),
        )
        runs = [*note.runs, run]
        if len(runs) > self.config.max_runs_per_tree:
            runs = runs[-self.config.max_runs_per_tree :]
        note = HistoryNote(tree_hash=tree_hash, runs=runs)

        try:
            ok = self.store.put(self.ref, tree_hash, note.model_dump_json(indent=2), force=True)
        except UnsafeArgumentError as e:
            return RecordResult(recorded=False, tree_hash=tree_hash, reason=str(e))
        if not ok:
            logger.warning("Failed to record validation history for %s", tree_hash[:12])
            return RecordResult(
                recorded=False, tree_hash=tree_hash, reason="Failed to write git note"
            )
        logger.debug("Recorded run %s for tree %s", run.id, tree_hash[:12])
        return RecordResult(recorded=True, tree_hash=tree_hash)

    def _has_uncommitted_changes(self, tree_hash: str) -> bool:
        try:
            return tree_hash != get_head_tree_hash(self.store.cwd)
        except TreeHashError:
            return True

    def read(self, tree_hash: str) -> HistoryNote | None:
        """Read the note for a tree identity.

        Runs that no longer match the schema are dropped with a warning.
        Content that is not a JSON object at all yields None.
        """
        content = self.store.get(self.ref, tree_hash)
        if content is None:
            return None
        return self._parse(tree_hash, content)

    def _parse(self, tree_hash: str, content: str) -> HistoryNote | None:
        try:
            note = HistoryNote.model_validate_json(content)
        except ValidationError:
            pass
        else:
            return note

        # Salvage the runs that still parse
        try:
            data = json.loads(content)
        except ValueError:
            logger.warning("Ignoring unreadable history note for %s", tree_hash[:12])
            return None
        if not isinstance(data, dict) or not isinstance(data.get("runs"), list):
            logger.warning("Ignoring malformed history note for %s", tree_hash[:12])
            return None

        runs = []
        for item in data["runs"]:
            try:
                runs.append(ValidationRun.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    "Skipping corrupt run in history for %s: %s",
                    tree_hash[:12],
                    e.error_count(),
                )
        return HistoryNote(tree_hash=str(data.get("tree_hash") or tree_hash), runs=runs)

    def list_tree_hashes(self) -> list[str]:
        return [object_id for object_id, _ in self.store.list_notes(self.ref)]

    def all_notes(self) -> list[HistoryNote]:
        """Every readable history note."""
        notes = []
        for object_id, content in self.store.list_notes(self.ref):
            note = self._parse(object_id, content)
            if note is not None:
                notes.append(note)
        return notes

    def has_history(self, tree_hash: str) -> bool:
        return self.store.has(self.ref, tree_hash)

    def find_cached_run(self, tree: TreeHashResult, passing_only: bool = True) -> ValidationRun | None:
        """Newest run for this tree whose submodule identities match.

        By default only passing runs qualify, so a re-run after a failure
        executes. Status checks pass ``passing_only=False`` to see failures.
        """
        if not tree.deterministic:
            return None
        note = self.read(tree.hash)
        if note is None:
            return None
        for run in reversed(note.runs):
            if passing_only and not run.passed:
                continue
            if _submodules_match(run.submodule_hashes, tree.submodule_hashes):
                return run
        return None

    def prune_older_than(self, days: int, dry_run: bool = False) -> PruneResult:
        """Delete notes whose oldest run is older than ``days`` days."""
        cutoff = datetime.now(UTC) - timedelta(days=days)
        notes = self.all_notes()
        result = PruneResult(notes_remaining=len(notes))
        for note in notes:
            if not note.runs or note.runs[0].timestamp >= cutoff:
                continue
            if not dry_run:
                self.store.remove(self.ref, note.tree_hash)
            result.notes_pruned += 1
            result.runs_pruned += len(note.runs)
            result.pruned_tree_hashes.append(note.tree_hash)
        result.notes_remaining -= result.notes_pruned
        return result

    def prune_all(self, dry_run: bool = False) -> PruneResult:
        """Delete every history note."""
        result = PruneResult()
        for note in self.all_notes():
            if not dry_run:
                self.store.remove(self.ref, note.tree_hash)
            result.notes_pruned += 1
            result.runs_pruned += len(note.runs)
            result.pruned_tree_hashes.append(note.tree_hash)
        return result

    def check_health(self) -> HealthCheckResult:
        """Report whether history has grown past the retention thresholds."""
        retention = self.config.retention
        notes = self.all_notes()
        cutoff = datetime.now(UTC) - timedelta(days=retention.warn_after_days)
        total = len(notes)
        old = sum(1 for note in notes if note.runs and note.runs[0].timestamp < cutoff)

        warn_count = total > retention.warn_after_count
        warn_age = old > 0
        prune_hint = f"vouch history prune --older-than {retention.warn_after_days}"

        message = None
        if warn_count and warn_age:
            message = (
                f"Validation history has grown large ({total} tree hashes). "
                f"Found {old} notes older than {retention.warn_after_days} days. "
                f"Consider pruning: {prune_hint}"
            )
        elif warn_count:
            message = (
                f"Validation history has grown large ({total} tree hashes). "
                f"Consider pruning: {prune_hint}"
            )
        elif warn_age:
            message = (
                f"Found validation history older than {retention.warn_after_days} days. "
                f"{old} tree hashes can be pruned: {prune_hint}"
            )

        return HealthCheckResult(
            total_notes=total,
            old_notes_count=old,
            should_warn=warn_count or warn_age,
            warning_message=message,
        )


def check_worktree_stability(before: str, cwd: Path | None = None) -> StabilityCheck:
    """Compare the tree identity from before a validation with the current one."""
    try:
        after = compute_tree_identity(cwd).hash
    except TreeHashError as e:
        logger.warning("Could not re-check tree identity: %s", e)
        return StabilityCheck(stable=False, tree_hash_before=before, tree_hash_after="")
    stable = before == after
    if not stable:
        logger.warning(
            "Working tree changed during validation (%s -> %s); not recording history",
            before[:12],
            after[:12],
        )
    return StabilityCheck(stable=stable, tree_hash_before=before, tree_hash_after=after)
