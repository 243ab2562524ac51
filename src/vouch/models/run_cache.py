"""Run cache entry model."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from .results import Extraction


class RunCacheEntry(BaseModel):
    """Cached result of one command at one tree identity.

    Stored at ``refs/notes/vouch/run/<tree_hash>/<cache_key>``, attached to
    the tree object. Absence is the only miss signal; entries never expire.

    Attributes:
        tree_hash: Tree identity the command ran against.
        cache_key: Encoded (command, workdir) key.
        command: Command as the user typed it.
        workdir: Working directory relative to the repo root ("" for root).
        timestamp: When the command finished.
        exit_code: Process exit code.
        duration_ms: Wall time in milliseconds.
        extraction: Diagnostics extracted from the output, if any.
    """

    tree_hash: str
    cache_key: str
    command: str
    workdir: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    exit_code: int
    duration_ms: int = 0
    extraction: Extraction | None = None
