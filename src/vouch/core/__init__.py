"""Core logic for vouch.

- tree_hash: working-copy identity
- cache_key: command cache keys
- run_cache: per-command result cache in git notes
- history: per-tree validation history in git notes
- flakiness: flaky step detection and run pattern summaries
- extraction: error extraction from step output
- step_runner: single command execution with timeouts
- scheduler: phase/step scheduling
- validator: end-to-end orchestration
- lock_manager: local validation lock
"""

from .cache_key import encode_cache_key, normalize_command
from .extraction import ErrorExtractor, generic_extractor
from .flakiness import detect_flakiness, find_flaky_steps, summarize_note, summarize_runs
from .history import HistoryStore, check_worktree_stability
from .lock_manager import LockError, acquire_lock, release_lock, update_heartbeat
from .run_cache import RunCache
from .scheduler import Scheduler, SchedulerConfigError
from .step_runner import StepOutcome, execute_command, run_step
from .tree_hash import (
    ComponentIdentity,
    TreeHashError,
    compute_composite_identity,
    compute_tree_identity,
    get_head_tree_hash,
    has_working_tree_changes,
)
from .validator import (
    RunOutcome,
    ValidationOutcome,
    lookup_cached_result,
    run_cached,
    validate,
)

__all__ = [
    "ComponentIdentity",
    "ErrorExtractor",
    "HistoryStore",
    "LockError",
    "RunCache",
    "RunOutcome",
    "Scheduler",
    "SchedulerConfigError",
    "StepOutcome",
    "TreeHashError",
    "ValidationOutcome",
    "acquire_lock",
    "check_worktree_stability",
    "compute_composite_identity",
    "compute_tree_identity",
    "detect_flakiness",
    "encode_cache_key",
    "execute_command",
    "find_flaky_steps",
    "generic_extractor",
    "get_head_tree_hash",
    "has_working_tree_changes",
    "lookup_cached_result",
    "normalize_command",
    "release_lock",
    "run_cached",
    "run_step",
    "summarize_note",
    "summarize_runs",
    "update_heartbeat",
    "validate",
]
