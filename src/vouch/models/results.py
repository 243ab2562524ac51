"""Runtime result models produced by the scheduler.

A ValidationResult is the full phase/step breakdown of one validation. It is
stored verbatim inside history notes, so every field here is part of the
persisted format.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class StepStatus(str, Enum):
    """Lifecycle of a single step."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class PhaseStatus(str, Enum):
    """Lifecycle of a phase. Blocked phases never leave PENDING."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"


class Detection(BaseModel):
    """Which extractor produced an extraction, and why."""

    extractor: str
    confidence: int = Field(ge=0, le=100)
    patterns: list[str] = Field(default_factory=list)
    reason: str = ""


class ExtractionMetadata(BaseModel):
    """Quality indicators reported by an extractor."""

    confidence: int = Field(default=0, ge=0, le=100)
    completeness: int = Field(default=0, ge=0, le=100)
    issues: list[str] = Field(default_factory=list)
    detection: Detection | None = None


class ExtractedError(BaseModel):
    """One diagnostic pulled out of step output."""

    message: str
    file: str | None = None
    line: int | None = None
    column: int | None = None
    code: str | None = None
    severity: str | None = None
    context: str | None = None


class Extraction(BaseModel):
    """Structured diagnostics for a failed step."""

    errors: list[ExtractedError] = Field(default_factory=list)
    summary: str = ""
    total_errors: int = 0
    guidance: str | None = None
    metadata: ExtractionMetadata | None = None


class StepResult(BaseModel):
    """Outcome of one step."""

    name: str = Field(description="Step name from config")
    command: str = Field(default="", description="Command that was executed")
    status: StepStatus = Field(description="Terminal status")
    passed: bool = Field(description="True only for StepStatus.PASSED")
    exit_code: int = Field(description="Process exit code")
    duration_secs: float = Field(default=0.0, description="Wall time, one decimal")
    output: str | None = Field(default=None, description="Combined stdout+stderr")
    extraction: Extraction | None = Field(default=None, description="Extracted diagnostics")


class PhaseResult(BaseModel):
    """Outcome of one phase."""

    name: str
    status: PhaseStatus
    passed: bool
    duration_secs: float = 0.0
    steps: list[StepResult] = Field(default_factory=list)
    skipped_steps: list[str] = Field(
        default_factory=list, description="Steps never started because of fail-fast"
    )
    blocked_by: list[str] = Field(
        default_factory=list, description="Dependencies that did not pass"
    )


class ValidationResult(BaseModel):
    """Aggregated result of one validation."""

    passed: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    tree_hash: str
    phases: list[PhaseResult] = Field(default_factory=list)
    failed_step: str | None = None
    rerun_command: str | None = None
    summary: str | None = None

    def all_steps(self) -> list[StepResult]:
        """Every executed step across phases, in phase order."""
        return [step for phase in self.phases for step in phase.steps]

    @property
    def duration_ms(self) -> int:
        return int(sum(phase.duration_secs for phase in self.phases) * 1000)
