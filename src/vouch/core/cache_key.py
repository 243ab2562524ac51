"""Cache keys for single-command results.

A key identifies a (command, workdir) pair. Simple commands are compared
after collapsing whitespace, so ``npm  test`` and ``npm test`` share a key.
Commands containing shell metacharacters keep their internal spacing, since
it can be significant inside quotes.
"""

import hashlib
import re

# Characters whose presence makes internal spacing significant
SHELL_METACHARACTERS = frozenset("\"'`\\|><&;$")
CACHE_KEY_LENGTH = 16

_WHITESPACE = re.compile(r"\s+")


def is_complex_command(command: str) -> bool:
    """True if the command contains quoting, escapes or shell operators."""
    return any(ch in SHELL_METACHARACTERS for ch in command)


def normalize_command(command: str) -> str:
    """Trim, and collapse whitespace runs unless the command is complex."""
    trimmed = command.strip()
    if is_complex_command(trimmed):
        return trimmed
    return _WHITESPACE.sub(" ", trimmed)


def encode_cache_key(command: str, workdir: str = "") -> str:
    """Encode a (command, workdir) pair as a ref-safe cache key.

    Args:
        command: Command as typed (e.g. "npm test")
        workdir: Directory relative to the repo root ("" for the root)

    Returns:
        First 16 hex characters of SHA-256 over ``<command>__<workdir>``

    Raises:
        ValueError: If the command is empty or whitespace
    """
    normalized = normalize_command(command)
    if not normalized:
        raise ValueError("Cannot build a cache key for an empty command")
    key_input = f"{normalized}__{workdir.strip()}"
    return hashlib.sha256(key_input.encode()).hexdigest()[:CACHE_KEY_LENGTH]
