from __future__ import annotations

import pytest

from candidate_sync.services.candidates.upsert import UpsertError, UpsertOutcome
from candidate_sync.services.sync.aggregate import (
    BYTES_PER_CHAR,
    SyncAggregate,
    format_record_error,
)
from candidate_sync.services.sync.types import JobDescriptor


def test_apply_outcome_keeps_counter_invariants() -> None:
    aggregate = SyncAggregate()
    aggregate.record_received(3)
    aggregate.apply_outcome({"external_id": "a"}, UpsertOutcome(success=True, created=True))
    aggregate.apply_outcome({"external_id": "b"}, UpsertOutcome(success=True, created=False))
    aggregate.apply_outcome(
        {"external_id": "c"},
        UpsertOutcome(
            success=False,
            created=False,
            errors=(UpsertError(code="STRING_TOO_LONG", fields=("email",), message="too long"),),
        ),
    )

    assert aggregate.counts() == {"received": 3, "upserted": 2, "inserted": 1, "updated": 1, "errored": 1}
    assert aggregate.has_errors
    assert aggregate.upserted == aggregate.inserted + aggregate.updated
    assert aggregate.errored + aggregate.upserted == aggregate.received


def test_estimated_bytes_grow_with_appended_text() -> None:
    aggregate = SyncAggregate()
    aggregate.record_call("abcd")
    aggregate.record_error("xy")

    assert aggregate.estimated_bytes == 6 * BYTES_PER_CHAR


def test_reset_clears_statistics_but_keeps_run_tag() -> None:
    aggregate = SyncAggregate()
    run_tag = aggregate.run_tag
    aggregate.record_received(4)
    aggregate.record_call("Fetch succeeded")
    aggregate.record_error("broken record")

    aggregate.reset()

    assert aggregate.run_tag == run_tag
    assert aggregate.counts() == {"received": 0, "upserted": 0, "inserted": 0, "updated": 0, "errored": 0}
    assert aggregate.call_log == []
    assert aggregate.error_log == []
    assert aggregate.estimated_bytes == 0


def test_summary_lists_counts_and_marks_empty_logs() -> None:
    aggregate = SyncAggregate(run_tag="run-1")

    summary = aggregate.summary()

    assert summary.splitlines()[:6] == [
        "Run: run-1",
        "Received Candidates: 0",
        "Upserted Candidates: 0",
        "Inserted Candidates: 0",
        "Updated Candidates: 0",
        "Candidates with Errors: 0",
    ]
    assert "Call Log:\n(empty)" in summary
    assert "Error Log:\n(empty)" in summary


def test_format_record_error_includes_record_and_each_error() -> None:
    text = format_record_error(
        {"last_name": "", "external_id": "C-1"},
        (
            UpsertError(code="REQUIRED_FIELD_MISSING", fields=("last_name",), message="missing"),
            UpsertError(code="INVALID_EMAIL_ADDRESS", fields=("email",), message="bad email"),
        ),
    )

    assert text.splitlines() == [
        '{"external_id": "C-1", "last_name": ""}',
        "  REQUIRED_FIELD_MISSING [last_name]: missing",
        "  INVALID_EMAIL_ADDRESS [email]: bad email",
    ]


def test_job_descriptor_transitions_share_the_aggregate() -> None:
    job = JobDescriptor(aggregate=SyncAggregate(), start_index=1, page_size=100, variant="active")

    retry = job.retry(depth=2)
    next_page = retry.next_page(depth=3)

    assert (retry.start_index, retry.attempt, retry.depth) == (1, 2, 2)
    assert (next_page.start_index, next_page.attempt, next_page.depth) == (101, 1, 3)
    assert next_page.aggregate is job.aggregate
    assert next_page.run_tag == job.run_tag


@pytest.mark.parametrize(
    "overrides",
    [
        {"start_index": 0},
        {"page_size": 0},
        {"attempt": 0},
        {"depth": 0},
    ],
)
def test_job_descriptor_rejects_out_of_range_fields(overrides) -> None:
    values = {"start_index": 1, "page_size": 10, "variant": "active", **overrides}
    with pytest.raises(ValueError):
        JobDescriptor(aggregate=SyncAggregate(), **values)


def test_apply_page_rejects_outcome_count_mismatch_without_counting() -> None:
    aggregate = SyncAggregate()

    with pytest.raises(ValueError):
        aggregate.apply_page([{"external_id": "a"}, {"external_id": "b"}], [UpsertOutcome(success=True, created=True)])

    assert aggregate.counts() == {"received": 0, "upserted": 0, "inserted": 0, "updated": 0, "errored": 0}
