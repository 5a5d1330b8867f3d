from __future__ import annotations

import pytest

from candidate_sync.services.sync.aggregate import SyncAggregate
from candidate_sync.services.sync.memory import PARTIAL_RESULT_TITLE, MemoryGovernor
from tests.unit.services.sync.helpers import RecordingLogSink


def test_budget_is_percentage_of_ceiling() -> None:
    governor = MemoryGovernor(
        log_sink=RecordingLogSink(),
        memory_ceiling_bytes=12_000_000,
        max_aggregate_memory_percent=50,
    )

    assert governor.budget_bytes == 6_000_000


@pytest.mark.asyncio
async def test_below_budget_leaves_aggregate_untouched() -> None:
    log_sink = RecordingLogSink()
    governor = MemoryGovernor(log_sink=log_sink, memory_ceiling_bytes=1_000, max_aggregate_memory_percent=50)
    aggregate = SyncAggregate()
    aggregate.record_received(2)
    aggregate.record_call("short")

    flushed = await governor.check_and_maybe_flush(aggregate)

    assert flushed is False
    assert log_sink.entries == []
    assert aggregate.received == 2
    assert aggregate.call_log == ["short"]


@pytest.mark.asyncio
async def test_reaching_budget_writes_partial_result_then_resets() -> None:
    log_sink = RecordingLogSink()
    governor = MemoryGovernor(log_sink=log_sink, memory_ceiling_bytes=40, max_aggregate_memory_percent=50)
    aggregate = SyncAggregate(run_tag="run-flush")
    aggregate.record_received(1)
    aggregate.record_error("x" * 10)

    flushed = await governor.check_and_maybe_flush(aggregate)

    assert flushed is True
    assert log_sink.kinds() == ["INFO"]
    _kind, title, body = log_sink.entries[0]
    assert title == PARTIAL_RESULT_TITLE
    assert "Run: run-flush" in body
    assert "Received Candidates: 1" in body
    assert "x" * 10 in body
    assert aggregate.run_tag == "run-flush"
    assert aggregate.estimated_bytes == 0
    assert aggregate.received == 0
    assert aggregate.error_log == []


@pytest.mark.asyncio
async def test_second_check_after_flush_does_not_flush_again() -> None:
    log_sink = RecordingLogSink()
    governor = MemoryGovernor(log_sink=log_sink, memory_ceiling_bytes=10, max_aggregate_memory_percent=100)
    aggregate = SyncAggregate()
    aggregate.record_call("0123456789")

    assert await governor.check_and_maybe_flush(aggregate) is True
    assert await governor.check_and_maybe_flush(aggregate) is False
    assert len(log_sink.entries) == 1
