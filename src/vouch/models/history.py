"""Validation history models.

One HistoryNote is attached to each tree identity under the history notes ref.
Its runs list is append-only in intent and pruned to the newest
``max_runs_per_tree`` entries on every write.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from .results import ValidationResult


class ValidationRun(BaseModel):
    """A single recorded validation."""

    id: str = Field(description="Unique run ID (run-<epoch millis>)")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    duration_ms: int = Field(default=0, description="Sum of phase durations")
    passed: bool
    branch: str = Field(default="unknown", description="Branch, or 'detached'")
    head_commit: str = Field(default="none", description="HEAD commit SHA")
    uncommitted_changes: bool = Field(default=False)
    submodule_hashes: dict[str, str] | None = Field(
        default=None, description="Submodule identities at validation time"
    )
    result: ValidationResult


class HistoryNote(BaseModel):
    """Content of the history note attached to one tree identity."""

    tree_hash: str
    runs: list[ValidationRun] = Field(default_factory=list)


class RecordResult(BaseModel):
    """Outcome of a history write. Failures are reported, never raised."""

    recorded: bool
    tree_hash: str
    reason: str | None = None


class StabilityCheck(BaseModel):
    """Tree identity before and after a validation."""

    stable: bool
    tree_hash_before: str
    tree_hash_after: str


class PruneResult(BaseModel):
    """Outcome of a prune operation."""

    notes_pruned: int = 0
    runs_pruned: int = 0
    notes_remaining: int = 0
    pruned_tree_hashes: list[str] = Field(default_factory=list)


class HealthCheckResult(BaseModel):
    """Whether stored history has grown past the retention thresholds."""

    total_notes: int
    old_notes_count: int
    should_warn: bool
    warning_message: str | None = None


class FlakyStep(BaseModel):
    """A step that failed earlier at the same tree identity and passes now."""

    name: str
    failed_at: datetime
    passed_at: datetime


class HistorySummary(BaseModel):
    """Condensed view of recent runs for pattern recognition."""

    total_runs: int
    recent_pattern: str
    success_rate: str | None = None
