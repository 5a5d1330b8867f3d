from __future__ import annotations

import logging

from candidate_sync.db.models import SyncLogKind
from candidate_sync.logging_utils import structured_log
from candidate_sync.services.sync.aggregate import SyncAggregate
from candidate_sync.services.sync.types import SyncLogSink

logger = logging.getLogger(__name__)

PARTIAL_RESULT_TITLE = "Candidate sync partial result"


class MemoryGovernor:
    """Flushes and resets the aggregate once its estimated size crosses the budget.

    The budget is a percentage of the working-memory ceiling. A flush is lossy
    for running totals but not for the audit trail: the full snapshot is
    written to the log sink before the reset.
    """

    def __init__(
        self,
        *,
        log_sink: SyncLogSink,
        memory_ceiling_bytes: int,
        max_aggregate_memory_percent: float,
    ) -> None:
        self._log_sink = log_sink
        self._memory_ceiling_bytes = max(1, int(memory_ceiling_bytes))
        self._max_aggregate_memory_percent = min(100.0, max(0.0, float(max_aggregate_memory_percent)))

    @property
    def budget_bytes(self) -> float:
        return self._memory_ceiling_bytes * self._max_aggregate_memory_percent / 100.0

    def should_flush(self, aggregate: SyncAggregate) -> bool:
        return aggregate.estimated_bytes >= self.budget_bytes

    async def check_and_maybe_flush(self, aggregate: SyncAggregate) -> bool:
        if not self.should_flush(aggregate):
            return False
        structured_log(
            logger,
            "info",
            "sync.aggregate_flushed",
            run_tag=aggregate.run_tag,
            estimated_bytes=aggregate.estimated_bytes,
            budget_bytes=int(self.budget_bytes),
            **aggregate.counts(),
        )
        await self._log_sink.write_log(SyncLogKind.INFO, PARTIAL_RESULT_TITLE, aggregate.summary())
        aggregate.reset()
        return True
