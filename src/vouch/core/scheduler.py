"""Phase and step scheduler.

Phases run one after another in declaration order. A phase runs only when
every phase it depends on passed; otherwise it is reported as blocked and
never started. Phases without a dependency on a failed phase still run, so
a validation always reports as much as it can.

Within a phase, steps run sequentially or on a bounded thread pool. Under
fail-fast, the first failure stops steps that have not started yet; steps
already running in a parallel phase are allowed to finish.
"""

import logging
import threading
import time
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from ..config import ExecutionMode, FailurePolicy, PhaseConfig, StepConfig, ValidationConfig
from ..models import (
    PhaseResult,
    PhaseStatus,
    StepResult,
    StepStatus,
    ValidationResult,
)
from .extraction import ErrorExtractor, generic_extractor
from .step_runner import StepOutcome, run_step

logger = logging.getLogger(__name__)

StepRunner = Callable[[StepConfig, Path, Mapping[str, str] | None, float | None], StepOutcome]


class SchedulerConfigError(Exception):
    """Phase configuration cannot be scheduled."""


def check_phase_graph(phases: list[PhaseConfig]) -> None:
    """Reject duplicate phases and dependencies that are not declared earlier.

    Raises:
        SchedulerConfigError: On the first problem found
    """
    seen: set[str] = set()
    for phase in phases:
        if phase.name in seen:
            raise SchedulerConfigError(f"Duplicate phase name: '{phase.name}'")
        for dep in phase.depends_on:
            if dep == phase.name:
                raise SchedulerConfigError(f"Phase '{phase.name}' depends on itself")
            if dep not in seen:
                raise SchedulerConfigError(
                    f"Phase '{phase.name}' depends on '{dep}', which is not declared before it"
                )
        seen.add(phase.name)


class Scheduler:
    """Runs the phases of a ValidationConfig against a working copy.

    Args:
        config: Validated phase configuration
        cwd: Repository root; step ``cwd`` values are relative to it
        extractor: Builds diagnostics for failed steps
        env: Extra environment for every step
        step_runner: Executes one step (replaceable in tests)
        on_phase_start: Called with the phase name before its steps run
        on_phase_complete: Called with each PhaseResult, blocked ones included
        on_step_start: Called with (phase name, step name)
        on_step_complete: Called with (phase name, StepResult)
    """

    def __init__(
        self,
        config: ValidationConfig,
        cwd: Path,
        extractor: ErrorExtractor | None = None,
        env: Mapping[str, str] | None = None,
        step_runner: StepRunner | None = None,
        on_phase_start: Callable[[str], None] | None = None,
        on_phase_complete: Callable[[PhaseResult], None] | None = None,
        on_step_start: Callable[[str, str], None] | None = None,
        on_step_complete: Callable[[str, StepResult], None] | None = None,
    ) -> None:
        check_phase_graph(config.phases)
        self.config = config
        self.cwd = cwd
        self.extractor = extractor or generic_extractor
        self.env = dict(env) if env else None
        self.step_runner = step_runner or run_step
        self.on_phase_start = on_phase_start
        self.on_phase_complete = on_phase_complete
        self.on_step_start = on_step_start
        self.on_step_complete = on_step_complete

    def run(self, tree_hash: str) -> ValidationResult:
        """Run every phase and aggregate the results."""
        statuses: dict[str, PhaseStatus] = {}
        phases: list[PhaseResult] = []

        for phase in self.config.phases:
            blocked_by = [dep for dep in phase.depends_on if statuses.get(dep) != PhaseStatus.PASSED]
            if blocked_by:
                logger.info("Skipping phase %s: blocked by %s", phase.name, ", ".join(blocked_by))
                result = PhaseResult(
                    name=phase.name,
                    status=PhaseStatus.PENDING,
                    passed=False,
                    blocked_by=blocked_by,
                )
            else:
                result = self.run_phase(phase)
            statuses[phase.name] = result.status
            phases.append(result)
            if self.on_phase_complete:
                self.on_phase_complete(result)

        return self._aggregate(tree_hash, phases)

    def run_phase(self, phase: PhaseConfig) -> PhaseResult:
        """Run the steps of one phase under its execution mode and policy."""
        if self.on_phase_start:
            self.on_phase_start(phase.name)
        logger.debug("Running phase %s (%s)", phase.name, phase.mode.value)

        fail_fast = phase.failure_policy(self.config.fail_fast) is FailurePolicy.FAIL_FAST
        start = time.monotonic()
        if phase.mode is ExecutionMode.PARALLEL:
            slots = self._run_parallel(phase, fail_fast)
        else:
            slots = self._run_sequential(phase, fail_fast)
        duration = round(time.monotonic() - start, 1)

        steps = [slot for slot in slots if slot is not None]
        skipped = [step.name for step, slot in zip(phase.steps, slots) if slot is None]
        passed = len(steps) == len(phase.steps) and all(step.passed for step in steps)
        return PhaseResult(
            name=phase.name,
            status=PhaseStatus.PASSED if passed else PhaseStatus.FAILED,
            passed=passed,
            duration_secs=duration,
            steps=steps,
            skipped_steps=skipped,
        )

    def _run_sequential(self, phase: PhaseConfig, fail_fast: bool) -> list[StepResult | None]:
        slots: list[StepResult | None] = [None] * len(phase.steps)
        for index, step in enumerate(phase.steps):
            slots[index] = self._execute(phase, step)
            if fail_fast and not slots[index].passed:
                break
        return slots

    def _run_parallel(self, phase: PhaseConfig, fail_fast: bool) -> list[StepResult | None]:
        slots: list[StepResult | None] = [None] * len(phase.steps)
        failed = threading.Event()

        def worker(index: int, step: StepConfig) -> None:
            if fail_fast and failed.is_set():
                return
            result = self._execute(phase, step)
            slots[index] = result
            if not result.passed:
                failed.set()

        max_workers = phase.max_workers or len(phase.steps)
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"vouch-{phase.name}") as pool:
            futures = [pool.submit(worker, i, step) for i, step in enumerate(phase.steps)]
            for future in futures:
                future.result()
        return slots

    def _execute(self, phase: PhaseConfig, step: StepConfig) -> StepResult:
        if self.on_step_start:
            self.on_step_start(phase.name, step.name)

        outcome = self.step_runner(step, self.cwd, self.env, phase.timeout)
        extraction = None
        if not outcome.passed:
            try:
                extraction = self.extractor(outcome.output, step.command)
            except Exception:
                logger.exception("Error extractor failed for step %s", step.name)

        result = StepResult(
            name=step.name,
            command=step.command,
            status=outcome.status,
            passed=outcome.passed,
            exit_code=outcome.exit_code,
            duration_secs=outcome.duration_secs,
            output=outcome.output,
            extraction=extraction,
        )
        logger.debug("Step %s %s (exit %d)", step.name, result.status.value, result.exit_code)
        if self.on_step_complete:
            self.on_step_complete(phase.name, result)
        return result

    def _aggregate(self, tree_hash: str, phases: list[PhaseResult]) -> ValidationResult:
        passed = all(phase.passed for phase in phases)
        failed_step = next(
            (step for phase in phases for step in phase.steps if not step.passed), None
        )
        if passed:
            summary = f"All {len(phases)} phase(s) passed"
        elif failed_step is not None:
            label = "timed out" if failed_step.status is StepStatus.TIMED_OUT else "failed"
            summary = f"Step '{failed_step.name}' {label} (exit {failed_step.exit_code})"
        else:
            summary = "Validation failed"
        return ValidationResult(
            passed=passed,
            tree_hash=tree_hash,
            phases=phases,
            failed_step=failed_step.name if failed_step else None,
            rerun_command=failed_step.command if failed_step else None,
            summary=summary,
        )
