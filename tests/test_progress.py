from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from rwl.models import IterationRecord, ProgressStoreError
from rwl.progress import ProgressStore, count_record_markers, parse_progress_text


def _record(iteration: int, *, passed: bool = True, found: bool = False, summary: str = "ok") -> IterationRecord:
    return IterationRecord(
        iteration=iteration,
        validation_passed=passed,
        completion_signal_found=found,
        summary=summary,
    )


def test_initialize_writes_header_with_plan(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / ".rwl" / "progress.txt")

    store.initialize("docs/plan.md")

    content = store.raw_content()
    assert content.startswith("# RWL Progress Log\n# Started: ")
    assert "# Plan: docs/plan.md\n" in content
    assert "# ----------------------------------------\n" in content
    summary = store.read()
    assert summary.plan_reference == "docs/plan.md"
    assert summary.started is not None
    assert summary.iteration_count == 0
    assert summary.last_status is None


def test_append_writes_record_block_and_counts(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "progress.txt")
    store.initialize("plan.md")

    store.append(_record(1, passed=False, summary="Validation failed"))
    store.append(_record(2, passed=True, found=True, summary="Complete"))

    content = store.raw_content()
    assert "## Iteration 1\n" in content
    assert "Validation: FAILED\nPromise: NOT FOUND\nSummary: Validation failed\n" in content
    assert "Validation: PASSED\nPromise: FOUND\nSummary: Complete\n" in content
    assert store.iteration_count() == 2
    summary = store.read()
    assert summary.last_status == "2 iterations completed"
    assert [record.iteration for record in summary.records] == [1, 2]
    assert summary.records[1].completion_signal_found is True
    assert summary.records[0].timestamp is not None


def test_record_timestamp_uses_progress_format(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "progress.txt")
    store.initialize("plan.md")
    moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    store.append(
        IterationRecord(
            iteration=1,
            validation_passed=True,
            completion_signal_found=False,
            summary="ok",
            timestamp=moment,
        )
    )

    assert "Timestamp: 2024-01-02 03:04:05 UTC\n" in store.raw_content()
    assert store.read().records[0].timestamp == moment


def test_multiline_summary_is_collapsed_to_one_line(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "progress.txt")
    store.initialize("plan.md")

    store.append(_record(1, summary="first line\n## Iteration 99\nsecond"))

    assert store.iteration_count() == 1


def test_append_after_hand_edit_without_trailing_newline(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "progress.txt")
    store.initialize("plan.md")
    store.append(_record(1, summary="x"))
    store.path.write_text(store.raw_content().rstrip("\n"), encoding="utf-8")

    store.append(_record(2))

    assert "Summary: x\n## Iteration 2\n" in store.raw_content()
    assert store.iteration_count() == 2
    assert [record.iteration for record in store.read().records] == [1, 2]


def test_reads_are_idempotent(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "progress.txt")
    store.initialize("plan.md")
    store.append(_record(1))

    first = store.read()
    second = store.read()

    assert first == second
    assert store.iteration_count() == store.iteration_count() == 1


def test_missing_file_reads_as_empty(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "missing.txt")

    assert store.exists() is False
    assert store.iteration_count() == 0
    assert store.read().records == ()
    assert store.recent_activity(10) == []


def test_hand_deleted_block_moves_resume_point(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "progress.txt")
    store.initialize("plan.md")
    for number in (1, 2, 3):
        store.append(_record(number))

    content = store.raw_content()
    cut = content.index("## Iteration 3")
    store.path.write_text(content[:cut], encoding="utf-8")

    assert store.iteration_count() == 2


def test_header_lines_that_do_not_parse_are_skipped() -> None:
    content = (
        "# RWL Progress Log\n"
        "# Started: sometime last week\n"
        "random note from the operator\n"
        "# Plan: plan.md\n"
        "\n"
        "## Iteration 1\n"
        "Validation: PASSED\n"
        "Promise: NOT FOUND\n"
        "Summary: Validation passed, waiting for completion\n"
    )

    summary = parse_progress_text(content)

    assert summary.started is None
    assert summary.plan_reference == "plan.md"
    assert summary.iteration_count == 1
    assert summary.records[0].validation_passed is True


def test_count_uses_marker_lines_only() -> None:
    content = (
        "# Plan: plan.md\n"
        "## Iteration 1\n"
        "Summary: mentions ## Iteration inline\n"
        "### Iteration notes\n"
        "## Iterations\n"
        "## Iteration 2\n"
    )

    assert count_record_markers(content) == 2
    assert parse_progress_text(content).iteration_count == 2


def test_marker_without_number_falls_back_to_position() -> None:
    summary = parse_progress_text("## Iteration 1\n## Iteration\n## Iteration x\n")

    assert [record.iteration for record in summary.records] == [1, 2, 3]


def test_recent_activity_returns_tail_of_marker_and_status_lines(tmp_path: Path) -> None:
    store = ProgressStore(tmp_path / "progress.txt")
    store.initialize("plan.md")
    for number in range(1, 6):
        store.append(_record(number))

    recent = store.recent_activity(4)

    assert recent == [
        "Promise: NOT FOUND",
        "## Iteration 5",
        "Validation: PASSED",
        "Promise: NOT FOUND",
    ]
    assert store.recent_activity(0) == []


def test_initialize_failure_raises_store_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    store = ProgressStore(blocker / "progress.txt")

    with pytest.raises(ProgressStoreError, match="Failed to initialize progress file"):
        store.initialize("plan.md")
