"""Configuration management for vouch."""

import tomllib
from enum import Enum
from pathlib import Path

import tomli_w
from pydantic import BaseModel, Field, ValidationError, model_validator

from .constants import (
    HISTORY_NOTES_REF,
    MAX_OUTPUT_BYTES,
    MAX_RUNS_PER_TREE,
    WARN_AFTER_COUNT,
    WARN_AFTER_DAYS,
)

CONFIG_DIR = ".vouch"
CONFIG_FILE = "config.toml"
STATE_FILE = "state.json"
LOCK_FILE = "validate.lock"
LOCAL_FILES = (STATE_FILE, LOCK_FILE)


class ConfigError(Exception):
    """Configuration file is unreadable or invalid."""


class ExecutionMode(str, Enum):
    """How the steps of a phase are run."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class FailurePolicy(str, Enum):
    """What a failing step does to the rest of its phase."""

    FAIL_FAST = "fail_fast"
    CONTINUE = "continue"


class StepConfig(BaseModel):
    """A single command to run."""

    name: str = Field(min_length=1, description="Step name, unique within its phase")
    command: str = Field(min_length=1, description="Shell command")
    description: str | None = Field(default=None, description="Human-readable purpose")
    timeout: float | None = Field(default=None, gt=0, description="Seconds before the step is killed")
    env: dict[str, str] = Field(default_factory=dict, description="Extra environment variables")
    cwd: str | None = Field(default=None, description="Directory relative to the repo root")


class PhaseConfig(BaseModel):
    """A group of steps with shared ordering and failure handling."""

    name: str = Field(min_length=1, description="Phase name, unique in the config")
    parallel: bool = Field(default=False, description="Run steps concurrently")
    depends_on: list[str] = Field(
        default_factory=list, description="Phases that must pass before this one runs"
    )
    steps: list[StepConfig] = Field(min_length=1, description="Steps in declaration order")
    fail_fast: bool | None = Field(
        default=None, description="Override the global fail_fast for this phase"
    )
    max_workers: int | None = Field(
        default=None, ge=1, description="Concurrency bound for parallel phases"
    )
    timeout: float | None = Field(
        default=None, gt=0, description="Default step timeout in seconds for this phase"
    )

    @model_validator(mode="after")
    def _unique_step_names(self) -> "PhaseConfig":
        names = [step.name for step in self.steps]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate step names in phase '{self.name}': {duplicates}")
        return self

    @property
    def mode(self) -> ExecutionMode:
        return ExecutionMode.PARALLEL if self.parallel else ExecutionMode.SEQUENTIAL

    def failure_policy(self, default_fail_fast: bool = True) -> FailurePolicy:
        """Effective policy, falling back to the global setting."""
        fail_fast = default_fail_fast if self.fail_fast is None else self.fail_fast
        return FailurePolicy.FAIL_FAST if fail_fast else FailurePolicy.CONTINUE


class ValidationConfig(BaseModel):
    """Ordered phases to run on ``vouch validate``.

    Dependencies may only name phases declared earlier, which rules out
    forward references and cycles at construction time.
    """

    phases: list[PhaseConfig] = Field(default_factory=list)
    fail_fast: bool = Field(default=True, description="Default fail-fast policy for phases")

    @model_validator(mode="after")
    def _check_dependencies(self) -> "ValidationConfig":
        seen: set[str] = set()
        for phase in self.phases:
            if phase.name in seen:
                raise ValueError(f"Duplicate phase name: '{phase.name}'")
            for dep in phase.depends_on:
                if dep == phase.name:
                    raise ValueError(f"Phase '{phase.name}' depends on itself")
                if dep not in seen:
                    raise ValueError(
                        f"Phase '{phase.name}' depends on '{dep}', "
                        "which is not declared before it"
                    )
            seen.add(phase.name)
        return self


class RetentionConfig(BaseModel):
    """Thresholds for history health warnings."""

    warn_after_days: int = Field(default=WARN_AFTER_DAYS, ge=1)
    warn_after_count: int = Field(default=WARN_AFTER_COUNT, ge=1)


class HistoryConfig(BaseModel):
    """Validation history stored in git notes."""

    enabled: bool = True
    notes_ref: str = Field(default=HISTORY_NOTES_REF, description="Notes ref for history")
    max_runs_per_tree: int = Field(default=MAX_RUNS_PER_TREE, ge=1)
    max_output_bytes: int = Field(default=MAX_OUTPUT_BYTES, ge=0)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)


class LockingConfig(BaseModel):
    """Local lock preventing concurrent validations."""

    enabled: bool = True


class VouchConfig(BaseModel):
    """Root configuration for vouch."""

    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    locking: LockingConfig = Field(default_factory=LockingConfig)


def get_config_dir(repo_root: Path) -> Path:
    """Path to the .vouch directory of a repository."""
    return repo_root / CONFIG_DIR


def ensure_config_dir(config_dir: Path) -> Path:
    """Create .vouch with a .gitignore for its checkout-local files.

    State and lock files must stay ignored, or writing them would change
    the working tree identity.
    """
    config_dir.mkdir(parents=True, exist_ok=True)
    gitignore = config_dir / ".gitignore"
    if not gitignore.exists():
        gitignore.write_text("".join(f"{name}\n" for name in LOCAL_FILES))
    return config_dir


def load_config(config_dir: Path) -> VouchConfig:
    """Load config from .vouch/config.toml.

    Args:
        config_dir: Path to .vouch directory

    Returns:
        Loaded configuration, or defaults if config.toml doesn't exist

    Raises:
        ConfigError: If the file is not valid TOML or fails validation
    """
    config_path = config_dir / CONFIG_FILE
    if not config_path.exists():
        return VouchConfig()
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{config_path}: {e}") from e
    try:
        return VouchConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"{config_path}: {e}") from e


def write_config_template(config_dir: Path) -> Path:
    """Write a starter config.toml.

    Args:
        config_dir: Path to .vouch directory

    Returns:
        Path to the written config file
    """
    ensure_config_dir(config_dir)
    config_path = config_dir / CONFIG_FILE
    template = {
        "validation": {
            "fail_fast": True,
            "phases": [
                {
                    "name": "checks",
                    "parallel": True,
                    "steps": [
                        {"name": "lint", "command": "ruff check ."},
                        {"name": "typecheck", "command": "pyright"},
                    ],
                },
                {
                    "name": "tests",
                    "depends_on": ["checks"],
                    "steps": [{"name": "unit", "command": "pytest -q", "timeout": 600}],
                },
            ],
        },
        "history": {
            "enabled": True,
            "notes_ref": HISTORY_NOTES_REF,
            "max_runs_per_tree": MAX_RUNS_PER_TREE,
            "max_output_bytes": MAX_OUTPUT_BYTES,
            "retention": {
                "warn_after_days": WARN_AFTER_DAYS,
                "warn_after_count": WARN_AFTER_COUNT,
            },
        },
        "locking": {"enabled": True},
    }
    with open(config_path, "wb") as f:
        tomli_w.dump(template, f)
    return config_path
