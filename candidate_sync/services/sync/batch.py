from __future__ import annotations

import logging

from candidate_sync.db.models import SyncLogKind
from candidate_sync.logging_context import set_run_tag
from candidate_sync.logging_utils import structured_log
from candidate_sync.services.candidates.upsert import DEFAULT_MATCH_KEY
from candidate_sync.services.source.client import CandidateSource
from candidate_sync.services.sync.aggregate import SyncAggregate, format_fetch_failure
from candidate_sync.services.sync.types import RecordUpserter, SyncLogSink

logger = logging.getLogger(__name__)

BATCH_COMPLETE_TITLE = "Candidate batch sync complete"
BATCH_COMPLETE_WITH_ERRORS_TITLE = "Candidate batch sync complete with errors"
BATCH_FAILED_TITLE = "Candidate batch sync failed"


class BatchSync:
    """One-shot variant: a single unpaged fetch and a single upsert pass, no chaining."""

    def __init__(
        self,
        *,
        source: CandidateSource,
        upserter: RecordUpserter,
        log_sink: SyncLogSink,
        match_key: str = DEFAULT_MATCH_KEY,
    ) -> None:
        self._source = source
        self._upserter = upserter
        self._log_sink = log_sink
        self._match_key = match_key

    async def run(self, *, variant: str) -> SyncAggregate:
        aggregate = SyncAggregate()
        set_run_tag(aggregate.run_tag)
        fetch_result = await self._source.fetch_all(variant=variant)
        if not fetch_result.ok:
            aggregate.record_call(
                format_fetch_failure(
                    start_index=1,
                    page_size=0,
                    attempt=1,
                    message=fetch_result.error or "unknown fetch error",
                )
            )
            structured_log(
                logger,
                "error",
                "sync.batch_fetch_failed",
                run_tag=aggregate.run_tag,
                variant=variant,
                error=fetch_result.error,
            )
            await self._log_sink.write_log(SyncLogKind.ERROR, BATCH_FAILED_TITLE, aggregate.summary())
            return aggregate

        records = fetch_result.records
        aggregate.record_call(f"Batch fetch succeeded: variant={variant} records={len(records)}")
        if records:
            outcomes = await self._upserter.upsert(records, match_key=self._match_key, variant=variant)
            aggregate.apply_page(records, outcomes)

        if aggregate.has_errors:
            kind, title = SyncLogKind.WARNING, BATCH_COMPLETE_WITH_ERRORS_TITLE
        else:
            kind, title = SyncLogKind.INFO, BATCH_COMPLETE_TITLE
        structured_log(
            logger,
            "info",
            "sync.batch_finished",
            run_tag=aggregate.run_tag,
            variant=variant,
            **aggregate.counts(),
        )
        await self._log_sink.write_log(kind, title, aggregate.summary())
        return aggregate
