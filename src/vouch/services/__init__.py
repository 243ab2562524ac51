"""External tool integrations for vouch.

This package wraps everything vouch asks of git:
- git: argument-vector command execution and repository queries
- refs: validation of refs, object ids and cache keys
- notes: NotesStore, git notes used as a key-value store
"""

from .git import (
    GitError,
    GitResult,
    execute_git,
    get_current_branch,
    get_git_dir,
    get_head_sha,
    get_repo_root,
    is_inside_work_tree,
    run_git,
)
from .notes import NotesStore
from .refs import (
    InvalidCacheKeyError,
    InvalidObjectIdError,
    InvalidRefError,
    NamespaceError,
    Rejection,
    UnsafeArgumentError,
    validate_cache_key,
    validate_git_ref,
    validate_object_id,
)

__all__ = [
    "GitError",
    "GitResult",
    "InvalidCacheKeyError",
    "InvalidObjectIdError",
    "InvalidRefError",
    "NamespaceError",
    "NotesStore",
    "Rejection",
    "UnsafeArgumentError",
    "execute_git",
    "get_current_branch",
    "get_git_dir",
    "get_head_sha",
    "get_repo_root",
    "is_inside_work_tree",
    "run_git",
    "validate_cache_key",
    "validate_git_ref",
    "validate_object_id",
]
