"""End-to-end validation and cached single-command runs.

validate(): identity -> history lookup -> schedule -> stability check ->
flakiness -> record. run_cached(): identity -> run cache lookup -> execute
-> store. Neither writes the CLI state file.
"""

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from ..config import HistoryConfig, ValidationConfig
from ..models import (
    RecordResult,
    RunCacheEntry,
    TreeHashResult,
    ValidationResult,
)
from ..services.git import GitError, get_repo_root
from ..services.notes import NotesStore
from .cache_key import encode_cache_key
from .extraction import ErrorExtractor, generic_extractor
from .flakiness import detect_flakiness
from .history import HistoryStore, check_worktree_stability
from .run_cache import RunCache
from .scheduler import Scheduler
from .step_runner import execute_command
from .tree_hash import TreeHashError, compute_tree_identity, placeholder_identity

logger = logging.getLogger(__name__)


@dataclass
class ValidationOutcome:
    """Result of ``validate`` plus how it was obtained."""

    result: ValidationResult
    from_cache: bool
    tree: TreeHashResult
    record: RecordResult | None = None
    flakiness_warning: str | None = None
    stable: bool = True


@dataclass
class RunOutcome:
    """Result of ``run_cached``. ``output`` is empty on a cache hit."""

    entry: RunCacheEntry
    from_cache: bool
    output: str = ""


def _history_for(cwd: Path, config: HistoryConfig | None) -> HistoryStore:
    return HistoryStore(NotesStore(cwd=cwd), config)


def _identity_or_placeholder(cwd: Path) -> TreeHashResult:
    """Tree identity, or a placeholder that disables caching when hashing fails."""
    try:
        return compute_tree_identity(cwd)
    except (TreeHashError, OSError) as e:
        logger.warning("Could not compute tree identity; caching disabled: %s", e)
        return placeholder_identity()


def lookup_cached_result(
    cwd: Path, history_config: HistoryConfig | None = None
) -> tuple[TreeHashResult, ValidationResult | None]:
    """Identity of the working copy and its newest recorded validation, passing or not."""
    tree = _identity_or_placeholder(cwd)
    if not tree.deterministic:
        return tree, None
    run = _history_for(cwd, history_config).find_cached_run(tree, passing_only=False)
    return tree, run.result if run else None


def validate(
    config: ValidationConfig,
    cwd: Path,
    force: bool = False,
    history_config: HistoryConfig | None = None,
    scheduler: Scheduler | None = None,
    extractor: ErrorExtractor | None = None,
) -> ValidationOutcome:
    """Validate the working copy at ``cwd``, reusing history when possible.

    Args:
        config: Phases to run
        cwd: Repository root
        force: Skip the history lookup (prior runs are kept)
        history_config: History settings; defaults when None
        scheduler: Preconfigured scheduler (e.g. with progress callbacks)
        extractor: Error extractor for a default scheduler

    Returns:
        ValidationOutcome
    """
    history_config = history_config or HistoryConfig()
    tree = _identity_or_placeholder(cwd)
    history = _history_for(cwd, history_config)
    use_history = tree.deterministic and history_config.enabled

    if use_history and not force:
        cached = history.find_cached_run(tree)
        if cached is not None:
            logger.info("Reusing validation from %s for tree %s", cached.timestamp, tree.hash[:12])
            return ValidationOutcome(result=cached.result, from_cache=True, tree=tree)

    scheduler = scheduler or Scheduler(config, cwd, extractor=extractor or generic_extractor)
    result = scheduler.run(tree.hash)

    if not use_history:
        return ValidationOutcome(result=result, from_cache=False, tree=tree)

    stability = check_worktree_stability(tree.hash, cwd)
    if not stability.stable:
        return ValidationOutcome(result=result, from_cache=False, tree=tree, stable=False)

    warning = detect_flakiness(history.read(tree.hash), result)
    if warning:
        logger.debug("Flaky steps detected for tree %s", tree.hash[:12])
    record = history.record(tree.hash, result, tree.submodule_hashes)
    return ValidationOutcome(
        result=result,
        from_cache=False,
        tree=tree,
        record=record,
        flakiness_warning=warning,
    )


def _relative_workdir(cwd: Path) -> str:
    try:
        root = get_repo_root(cwd)
        rel = cwd.resolve().relative_to(root.resolve())
    except (GitError, ValueError):
        return ""
    return "" if str(rel) == "." else rel.as_posix()


def run_cached(
    command: str,
    cwd: Path,
    force: bool = False,
    timeout: float | None = None,
    extractor: ErrorExtractor | None = None,
) -> RunOutcome:
    """Run one command, reusing a stored successful result for this tree.

    Only exit-code-0 results are stored, so failures always re-run.

    Raises:
        ValueError: If the command is empty
    """
    workdir = _relative_workdir(cwd)
    cache_key = encode_cache_key(command, workdir)
    tree = _identity_or_placeholder(cwd)
    cache = RunCache(NotesStore(cwd=cwd))

    if tree.deterministic and not force:
        entry = cache.get(tree.hash, cache_key)
        if entry is not None:
            logger.info("Cache hit for '%s' at tree %s", command, tree.hash[:12])
            return RunOutcome(entry=entry, from_cache=True)

    start = time.monotonic()
    outcome = execute_command(command, cwd, timeout=timeout)
    duration_ms = int((time.monotonic() - start) * 1000)

    extraction = None
    if not outcome.passed:
        extraction = (extractor or generic_extractor)(outcome.output, command)

    entry = RunCacheEntry(
        tree_hash=tree.hash,
        cache_key=cache_key,
        command=command,
        workdir=workdir,
        timestamp=datetime.now(UTC),
        exit_code=outcome.exit_code,
        duration_ms=duration_ms,
        extraction=extraction,
    )
    if tree.deterministic and outcome.exit_code == 0:
        cache.put(tree.hash, cache_key, entry)
    return RunOutcome(entry=entry, from_cache=False, output=outcome.output)
