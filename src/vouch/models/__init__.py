"""Pydantic data models for vouch.

This package defines the data structures shared by the cache, history and
scheduler layers:
- Tree identities (TreeHashResult)
- Step, phase and validation results (StepResult, PhaseResult, ValidationResult)
- Run cache entries (RunCacheEntry)
- History notes and their runs (HistoryNote, ValidationRun)
- The validation lock (Lock)

Every model that is persisted in git notes round-trips through
``model_dump_json`` / ``model_validate_json``.
"""

from .history import (
    FlakyStep,
    HealthCheckResult,
    HistoryNote,
    HistorySummary,
    PruneResult,
    RecordResult,
    StabilityCheck,
    ValidationRun,
)
from .lock import Lock
from .results import (
    Detection,
    ExtractedError,
    Extraction,
    ExtractionMetadata,
    PhaseResult,
    PhaseStatus,
    StepResult,
    StepStatus,
    ValidationResult,
)
from .run_cache import RunCacheEntry
from .tree import TreeHashResult, combine_identities

__all__ = [
    "Detection",
    "ExtractedError",
    "Extraction",
    "ExtractionMetadata",
    "FlakyStep",
    "HealthCheckResult",
    "HistoryNote",
    "HistorySummary",
    "Lock",
    "PhaseResult",
    "PhaseStatus",
    "PruneResult",
    "RecordResult",
    "RunCacheEntry",
    "StabilityCheck",
    "StepResult",
    "StepStatus",
    "TreeHashResult",
    "ValidationResult",
    "ValidationRun",
    "combine_identities",
]
