"""Error extraction for failed step output.

Tool-specific extractors are pluggable through the ErrorExtractor protocol.
The generic extractor is the fallback: it picks out lines that look like
errors and reports low confidence.
"""

import re
from typing import Protocol

from ..models import Detection, ExtractedError, Extraction, ExtractionMetadata

MAX_EXTRACTED_ERRORS = 10
GENERIC_CONFIDENCE = 30

_ERROR_LINE = re.compile(
    r"\b(error|failed|failure|fatal|exception|traceback|panic)\b|^E\s+|✗|✘",
    re.IGNORECASE,
)
_FILE_LOCATION = re.compile(r"(?P<file>[\w./\\-]+\.\w+):(?P<line>\d+)(?::(?P<column>\d+))?")


class ErrorExtractor(Protocol):
    """Turns raw step output into structured diagnostics."""

    def __call__(self, output: str, command: str) -> Extraction: ...


def _to_error(line: str) -> ExtractedError:
    match = _FILE_LOCATION.search(line)
    if match is None:
        return ExtractedError(message=line)
    return ExtractedError(
        message=line,
        file=match.group("file"),
        line=int(match.group("line")),
        column=int(match.group("column")) if match.group("column") else None,
    )


def generic_extractor(output: str, command: str) -> Extraction:
    """Collect up to ten error-looking lines from the output."""
    matches = [line.strip() for line in output.splitlines() if _ERROR_LINE.search(line)]
    errors = [_to_error(line) for line in matches[:MAX_EXTRACTED_ERRORS]]

    if matches:
        summary = f"{len(matches)} error line(s) found in output of '{command}'"
    else:
        summary = f"'{command}' failed with no recognizable error lines"

    return Extraction(
        errors=errors,
        summary=summary,
        total_errors=len(matches),
        guidance="Inspect the full output for details; no tool-specific extractor matched.",
        metadata=ExtractionMetadata(
            confidence=GENERIC_CONFIDENCE,
            completeness=100 if len(matches) <= MAX_EXTRACTED_ERRORS else 50,
            detection=Detection(
                extractor="generic",
                confidence=GENERIC_CONFIDENCE,
                patterns=["error keywords"],
                reason="Fallback extractor",
            ),
        ),
    )
