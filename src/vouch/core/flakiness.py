"""Flaky step detection and run pattern summaries."""

from collections.abc import Sequence

from ..models import FlakyStep, HistoryNote, HistorySummary, ValidationResult

PATTERN_WINDOW = 10
NO_PREVIOUS_RUNS = "No previous runs"


def find_flaky_steps(note: HistoryNote, current: ValidationResult) -> list[FlakyStep]:
    """Steps that failed in the most recent failed run and pass now.

    Nothing is flaky when the current result failed or when no earlier
    run at this tree identity failed.
    """
    if not current.passed or not note.runs:
        return []

    failed_run = next(
        (run for run in sorted(note.runs, key=lambda r: r.timestamp, reverse=True) if not run.passed),
        None,
    )
    if failed_run is None:
        return []

    previous = {step.name: step for step in failed_run.result.all_steps()}
    flaky = []
    for step in current.all_steps():
        before = previous.get(step.name)
        if before is not None and not before.passed and step.passed:
            flaky.append(
                FlakyStep(name=step.name, failed_at=failed_run.timestamp, passed_at=current.timestamp)
            )
    return flaky


def format_flakiness_warning(steps: Sequence[FlakyStep]) -> str:
    lines = [
        "Validation passed, but failed on a previous run without code changes.",
        "",
        "  Failed steps from previous run:",
    ]
    for step in steps:
        lines.append(
            f"  - {step.name} (failed {step.failed_at.isoformat()}, "
            f"passed {step.passed_at.isoformat()})"
        )
    lines.extend(
        [
            "",
            "  This may indicate flaky tests. Consider investigating:",
            "  - Non-deterministic test behavior",
            "  - System resource contention",
            "  - External dependency issues",
        ]
    )
    return "\n".join(lines)


def detect_flakiness(note: HistoryNote | None, current: ValidationResult) -> str | None:
    """Warning text if the current pass follows a failure at the same tree."""
    if note is None:
        return None
    steps = find_flaky_steps(note, current)
    if not steps:
        return None
    return format_flakiness_warning(steps)


def _runs(count: int) -> str:
    return f"{count} run{'s' if count != 1 else ''}"


def _leading(flags: Sequence[bool], value: bool) -> int:
    count = 0
    for flag in flags:
        if flag is not value:
            break
        count += 1
    return count


def _is_alternating(flags: Sequence[bool]) -> bool:
    if len(flags) < 4:
        return False
    return all(a is not b for a, b in zip(flags, flags[1:]))


def summarize_runs(passed: Sequence[bool]) -> HistorySummary:
    """Summarize pass/fail outcomes, most recent first.

    Only the newest runs (up to ten) are classified. Rules are tried in
    order: uniform window, recently fixed, leading streak of two or more,
    strict alternation, then a majority count.
    """
    if not passed:
        return HistorySummary(total_runs=0, recent_pattern=NO_PREVIOUS_RUNS)

    window = [bool(flag) for flag in passed[:PATTERN_WINDOW]]
    n = len(window)
    passes = sum(window)
    fails = n - passes
    success_rate = f"{round(passes / n * 100)}%"

    leading_passes = _leading(window, True)
    leading_fails = _leading(window, False)

    if leading_passes == n:
        pattern = f"Passed last {_runs(n)}"
    elif leading_fails == n:
        pattern = f"Failed last {_runs(n)}"
    elif leading_passes >= 2 and window[leading_passes:].count(False) >= 2:
        pattern = "Recently fixed (was failing)"
    elif leading_passes >= 2:
        pattern = f"Passed last {_runs(leading_passes)}"
    elif leading_fails >= 2:
        pattern = f"Failed last {_runs(leading_fails)}"
    elif _is_alternating(window):
        pattern = "Flaky (alternating)"
    elif passes > fails:
        pattern = f"Mostly passing ({passes}/{n} runs)"
    elif fails > passes:
        pattern = f"Mostly failing ({fails}/{n} runs)"
    else:
        pattern = f"Mixed results ({passes} passed, {fails} failed)"

    return HistorySummary(total_runs=len(passed), recent_pattern=pattern, success_rate=success_rate)


def summarize_note(note: HistoryNote) -> HistorySummary:
    """Pattern summary over the runs stored for one tree identity."""
    return summarize_runs([run.passed for run in reversed(note.runs)])
