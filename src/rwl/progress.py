"""Append-only progress log for rwl runs.

The log at ``.rwl/progress.txt`` is the only persisted loop state. It starts with a
header block::

    # RWL Progress Log
    # Started: 2024-01-01 12:00:00 UTC
    # Plan: plan.md
    # ----------------------------------------

followed by one block per attempted iteration::

    ## Iteration 3
    Timestamp: 2024-01-01 12:10:00 UTC
    Validation: PASSED
    Promise: NOT FOUND
    Summary: Validation passed, waiting for completion

There is no stored counter. The number of ``## Iteration`` marker lines *is* the
iteration count, so deleting blocks by hand moves the resume point accordingly.
Header lines that do not parse are skipped. The store assumes a single writer and
takes no file locks.
"""

from __future__ import annotations

from pathlib import Path

from rwl.constants import (
    PROGRESS_FIELD_PATTERN,
    PROGRESS_HEADER_PLAN,
    PROGRESS_HEADER_RULE,
    PROGRESS_HEADER_STARTED,
    PROGRESS_HEADER_TITLE,
    PROGRESS_RECORD_MARKER,
    PROGRESS_RECORD_MARKER_PATTERN,
)
from rwl.models import IterationRecord, ProgressStoreError, ProgressSummary
from rwl.utils import _format_progress_timestamp, _parse_progress_timestamp


def _format_header(plan_reference: str, started: str) -> str:
    return (
        f"{PROGRESS_HEADER_TITLE}\n"
        f"{PROGRESS_HEADER_STARTED} {started}\n"
        f"{PROGRESS_HEADER_PLAN} {plan_reference}\n"
        f"{PROGRESS_HEADER_RULE}\n\n"
    )


def _format_record(record: IterationRecord) -> str:
    return (
        f"{PROGRESS_RECORD_MARKER} {record.iteration}\n"
        f"Timestamp: {_format_progress_timestamp(record.timestamp)}\n"
        f"Validation: {'PASSED' if record.validation_passed else 'FAILED'}\n"
        f"Promise: {'FOUND' if record.completion_signal_found else 'NOT FOUND'}\n"
        f"Summary: {' '.join(record.summary.split())}\n\n"
    )


def _is_record_marker(line: str) -> bool:
    return bool(PROGRESS_RECORD_MARKER_PATTERN.match(line))


def _parse_marker_iteration(line: str, *, fallback: int) -> int:
    tail = line[len(PROGRESS_RECORD_MARKER):].strip()
    try:
        value = int(tail.split()[0]) if tail else fallback
    except ValueError:
        return fallback
    return value if value > 0 else fallback


def _build_record(iteration: int, fields: dict[str, str]) -> IterationRecord:
    return IterationRecord(
        iteration=iteration,
        timestamp=_parse_progress_timestamp(fields.get("Timestamp", "")),
        validation_passed=fields.get("Validation", "").strip().upper() == "PASSED",
        completion_signal_found=fields.get("Promise", "").strip().upper() == "FOUND",
        summary=fields.get("Summary", "").strip(),
    )


def parse_progress_text(content: str) -> ProgressSummary:
    started = None
    plan_reference: str | None = None
    records: list[IterationRecord] = []
    current_iteration: int | None = None
    current_fields: dict[str, str] = {}

    def flush() -> None:
        nonlocal current_iteration, current_fields
        if current_iteration is not None:
            records.append(_build_record(current_iteration, current_fields))
        current_iteration = None
        current_fields = {}

    for line in content.splitlines():
        if _is_record_marker(line):
            flush()
            current_iteration = _parse_marker_iteration(line, fallback=len(records) + 1)
            continue
        if current_iteration is not None:
            match = PROGRESS_FIELD_PATTERN.match(line)
            if match and match.group(1) not in current_fields:
                current_fields[match.group(1)] = match.group(2)
            continue
        if line.startswith(PROGRESS_HEADER_STARTED):
            started = _parse_progress_timestamp(line[len(PROGRESS_HEADER_STARTED):])
        elif line.startswith(PROGRESS_HEADER_PLAN):
            plan_reference = line[len(PROGRESS_HEADER_PLAN):].strip() or None

    flush()
    return ProgressSummary(started=started, plan_reference=plan_reference, records=tuple(records))


def count_record_markers(content: str) -> int:
    return sum(1 for line in content.splitlines() if _is_record_marker(line))


class ProgressStore:
    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def initialize(self, plan_reference: str | Path) -> None:
        """Write a fresh header. Callers decide whether an existing log may be replaced."""
        header = _format_header(str(plan_reference), _format_progress_timestamp())
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(header, encoding="utf-8")
        except OSError as exc:
            raise ProgressStoreError(f"Failed to initialize progress file {self.path}: {exc}") from exc

    def _ends_without_newline(self) -> bool:
        if not self.path.exists():
            return False
        size = self.path.stat().st_size
        if size == 0:
            return False
        with self.path.open("rb") as handle:
            handle.seek(size - 1)
            return handle.read(1) != b"\n"

    def append(self, record: IterationRecord) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # The record marker must start its own line to be counted.
            prefix = "\n" if self._ends_without_newline() else ""
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(prefix + _format_record(record))
        except OSError as exc:
            raise ProgressStoreError(f"Failed to write to progress file {self.path}: {exc}") from exc

    def raw_content(self) -> str:
        if not self.path.exists():
            return ""
        try:
            return self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ProgressStoreError(f"Failed to read progress file {self.path}: {exc}") from exc

    def read(self) -> ProgressSummary:
        return parse_progress_text(self.raw_content())

    def iteration_count(self) -> int:
        return count_record_markers(self.raw_content())

    def recent_activity(self, limit: int) -> list[str]:
        lines = [
            line
            for line in self.raw_content().splitlines()
            if _is_record_marker(line) or line.startswith("Validation:") or line.startswith("Promise:")
        ]
        return lines[-limit:] if limit > 0 else []
