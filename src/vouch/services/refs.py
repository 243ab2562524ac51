"""Validation of values that reach git as ref names or object ids.

Anything user- or repository-controlled that ends up in a git argument vector
is checked here first. A rejected value raises an ``UnsafeArgumentError``
subclass whose ``reason`` says which rule it broke, so callers and tests can
tell a shell-injection attempt from a malformed hash.
"""

import re
from enum import Enum

SHELL_METACHARACTERS = frozenset(";&|`$(){}[]<>!\\\"'")
OBJECT_ID_PATTERN = re.compile(r"^[0-9a-f]+$")
CACHE_KEY_PATTERN = re.compile(r"^[0-9a-f]{16}$")
MIN_OBJECT_ID_LENGTH = 4
MAX_OBJECT_ID_LENGTH = 64  # SHA-256 repositories


class Rejection(str, Enum):
    """Why a value was refused."""

    EMPTY = "empty"
    NULL_BYTE = "null_byte"
    NEWLINE = "newline"
    SHELL_METACHARACTER = "shell_metacharacter"
    WHITESPACE = "whitespace"
    LEADING_DASH = "leading_dash"
    PATH_TRAVERSAL = "path_traversal"
    NOT_HEXADECIMAL = "not_hexadecimal"
    INVALID_LENGTH = "invalid_length"
    INVALID_CACHE_KEY = "invalid_cache_key"
    OUTSIDE_NAMESPACE = "outside_namespace"


class UnsafeArgumentError(ValueError):
    """A value failed validation before reaching git."""

    kind = "argument"

    def __init__(self, value: str, reason: Rejection, detail: str | None = None) -> None:
        self.value = value
        self.reason = reason
        message = f"Invalid {self.kind} ({reason.value}): {value!r}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidRefError(UnsafeArgumentError):
    kind = "git ref"


class InvalidObjectIdError(UnsafeArgumentError):
    kind = "object id"


class InvalidCacheKeyError(UnsafeArgumentError):
    kind = "cache key"


class NamespaceError(UnsafeArgumentError):
    kind = "notes namespace"


def _check_common(value: str, error: type[UnsafeArgumentError]) -> None:
    """Rules shared by refs, object ids and cache keys."""
    if not isinstance(value, str) or not value:
        raise error(str(value), Rejection.EMPTY)
    if "\0" in value:
        raise error(value, Rejection.NULL_BYTE)
    if "\n" in value or "\r" in value:
        raise error(value, Rejection.NEWLINE)
    bad = sorted(SHELL_METACHARACTERS.intersection(value))
    if bad:
        raise error(value, Rejection.SHELL_METACHARACTER, f"contains {''.join(bad)!r}")
    if any(ch.isspace() for ch in value):
        raise error(value, Rejection.WHITESPACE)
    if value.startswith("-"):
        raise error(value, Rejection.LEADING_DASH, "would be parsed as an option")
    if ".." in value or "//" in value:
        raise error(value, Rejection.PATH_TRAVERSAL)


def validate_git_ref(ref: str) -> str:
    """Validate a ref or notes namespace path and return it unchanged.

    Raises:
        InvalidRefError: If the ref is unsafe
    """
    _check_common(ref, InvalidRefError)
    if ref.endswith("/"):
        raise InvalidRefError(ref, Rejection.PATH_TRAVERSAL, "trailing slash")
    return ref


def validate_object_id(object_id: str) -> str:
    """Validate a git object id (tree hash) and return it unchanged.

    Symbolic names such as ``HEAD`` or ``main`` are rejected: notes are only
    ever attached to content identities.

    Raises:
        InvalidObjectIdError: If the id is unsafe or not a plausible hash
    """
    _check_common(object_id, InvalidObjectIdError)
    if not OBJECT_ID_PATTERN.match(object_id):
        raise InvalidObjectIdError(object_id, Rejection.NOT_HEXADECIMAL)
    if not MIN_OBJECT_ID_LENGTH <= len(object_id) <= MAX_OBJECT_ID_LENGTH:
        raise InvalidObjectIdError(
            object_id,
            Rejection.INVALID_LENGTH,
            f"expected {MIN_OBJECT_ID_LENGTH}-{MAX_OBJECT_ID_LENGTH} characters",
        )
    return object_id


def validate_cache_key(cache_key: str) -> str:
    """Validate an encoded cache key and return it unchanged.

    Raises:
        InvalidCacheKeyError: If the key is not 16 lowercase hex characters
    """
    _check_common(cache_key, InvalidCacheKeyError)
    if not CACHE_KEY_PATTERN.match(cache_key):
        raise InvalidCacheKeyError(cache_key, Rejection.INVALID_CACHE_KEY)
    return cache_key


def full_notes_ref(ref: str) -> str:
    """Expand a short notes ref (``vouch/validate``) to ``refs/notes/...``."""
    return ref if ref.startswith("refs/") else f"refs/notes/{ref}"


def ensure_within_namespace(ref: str, root: str) -> str:
    """Check that a notes ref lies strictly below ``refs/notes/<root>/``.

    Returns:
        The full ref name

    Raises:
        InvalidRefError: If the ref itself is unsafe
        NamespaceError: If it is the root itself or outside it
    """
    validate_git_ref(ref)
    full = full_notes_ref(ref)
    prefix = f"{full_notes_ref(root)}/"
    if not full.startswith(prefix) or len(full) == len(prefix):
        raise NamespaceError(full, Rejection.OUTSIDE_NAMESPACE, f"must be below {prefix}")
    return full
