from __future__ import annotations

import logging
from collections.abc import Callable

from candidate_sync.db.models import SyncLogKind
from candidate_sync.logging_context import set_run_tag
from candidate_sync.logging_utils import structured_log
from candidate_sync.services.candidates.upsert import DEFAULT_MATCH_KEY
from candidate_sync.services.source.client import CandidateSource, FetchResult
from candidate_sync.services.sync.aggregate import format_fetch_failure, format_fetch_success
from candidate_sync.services.sync.dispatch import DispatchScheduler
from candidate_sync.services.sync.memory import MemoryGovernor
from candidate_sync.services.sync.policies import BackoffPolicy, ChainDepthGuard
from candidate_sync.services.sync.types import (
    JobDescriptor,
    RecordUpserter,
    SyncLogSink,
    SyncPolicyConfig,
)

logger = logging.getLogger(__name__)

COMPLETE_TITLE = "Candidate sync complete"
COMPLETE_WITH_ERRORS_TITLE = "Candidate sync complete with errors"
MAX_ATTEMPTS_REACHED_TITLE = "Candidate sync failed: max attempts reached"
ATTEMPTS_EXCEEDED_TITLE = "Candidate sync failed: attempts exceeded"
HOP_FAILED_TITLE = "Candidate sync failed: unexpected error"


class PagingController:
    """Executes one page attempt of a paged candidate sync and decides what comes next.

    Every execution ends in exactly one of: a re-dispatch through the
    scheduler (retry of the same page or the next page) or a terminal log
    entry. Nothing is raised to the scheduler.
    """

    def __init__(
        self,
        *,
        source: CandidateSource,
        upserter: RecordUpserter,
        log_sink: SyncLogSink,
        scheduler: DispatchScheduler,
        config: SyncPolicyConfig,
        match_key: str = DEFAULT_MATCH_KEY,
    ) -> None:
        self._source = source
        self._upserter = upserter
        self._log_sink = log_sink
        self._scheduler = scheduler
        self._config = config
        self._match_key = match_key
        self._backoff = BackoffPolicy(delay_seconds=config.delay_between_attempts_seconds)
        self._guard = ChainDepthGuard(
            max_depth=config.max_chain_depth,
            cooldown_seconds=config.chain_break_cooldown_seconds,
        )
        self._governor = MemoryGovernor(
            log_sink=log_sink,
            memory_ceiling_bytes=config.memory_ceiling_bytes,
            max_aggregate_memory_percent=config.max_aggregate_memory_percent,
        )

    async def execute(self, job: JobDescriptor) -> None:
        set_run_tag(job.run_tag)
        try:
            await self._execute_hop(job)
        except Exception as exc:
            logger.exception("sync.hop_failed", extra=job.log_fields())
            job.aggregate.record_call(
                f"Hop failed: startIndex={job.start_index} attempt={job.attempt} "
                f"error={type(exc).__name__}: {exc}"
            )
            self._scheduler.cancel_pending_retries(job.run_tag)
            await self._finish(job, kind=SyncLogKind.ERROR, title=HOP_FAILED_TITLE, outcome="hop_failed")

    async def _execute_hop(self, job: JobDescriptor) -> None:
        if job.attempt > self._config.max_attempts:
            # Retries are gated below, so reaching this branch is a bug.
            self._scheduler.cancel_pending_retries(job.run_tag)
            await self._finish(
                job,
                kind=SyncLogKind.ERROR,
                title=ATTEMPTS_EXCEEDED_TITLE,
                outcome="attempts_exceeded",
            )
            return

        fetch_result = await self._source.fetch_page(
            start_index=job.start_index,
            page_size=job.page_size,
            fault_mode=job.fault_mode,
            variant=job.variant,
        )
        if not fetch_result.ok:
            await self._handle_fetch_failure(job, fetch_result)
            return

        self._scheduler.cancel_pending_retries(job.run_tag)
        records = fetch_result.records
        job.aggregate.record_call(
            format_fetch_success(
                start_index=job.start_index,
                page_size=job.page_size,
                attempt=job.attempt,
                record_count=len(records),
            )
        )
        if not records:
            await self._finish(job, kind=SyncLogKind.INFO, title=COMPLETE_TITLE, outcome="source_exhausted")
            return

        await self._upsert_page(job, records)

        if len(records) >= job.page_size:
            await self._redispatch(job, delay_seconds=0, build_next=lambda depth: job.next_page(depth=depth))
            return

        if job.aggregate.has_errors:
            await self._finish(
                job,
                kind=SyncLogKind.WARNING,
                title=COMPLETE_WITH_ERRORS_TITLE,
                outcome="completed_with_errors",
            )
        else:
            await self._finish(job, kind=SyncLogKind.INFO, title=COMPLETE_TITLE, outcome="completed")

    async def _handle_fetch_failure(self, job: JobDescriptor, fetch_result: FetchResult) -> None:
        message = fetch_result.error or "unknown fetch error"
        job.aggregate.record_call(
            format_fetch_failure(
                start_index=job.start_index,
                page_size=job.page_size,
                attempt=job.attempt,
                message=message,
            )
        )
        structured_log(
            logger,
            "warning",
            "sync.fetch_failed",
            status_code=fetch_result.status_code,
            error=message,
            max_attempts=self._config.max_attempts,
            **job.log_fields(),
        )
        if job.attempt < self._config.max_attempts:
            await self._redispatch(
                job,
                delay_seconds=self._backoff.delay_before_retry(),
                build_next=lambda depth: job.retry(depth=depth),
            )
            return
        self._scheduler.cancel_pending_retries(job.run_tag)
        await self._finish(
            job,
            kind=SyncLogKind.ERROR,
            title=MAX_ATTEMPTS_REACHED_TITLE,
            outcome="max_attempts_reached",
        )

    async def _upsert_page(self, job: JobDescriptor, records: list[dict]) -> None:
        outcomes = await self._upserter.upsert(records, match_key=self._match_key, variant=job.variant)
        job.aggregate.apply_page(records, outcomes)
        structured_log(
            logger,
            "info",
            "sync.page_upserted",
            record_count=len(records),
            failed_count=sum(1 for outcome in outcomes if not outcome.success),
            **job.log_fields(),
        )

    async def _redispatch(
        self,
        job: JobDescriptor,
        *,
        delay_seconds: int,
        build_next: Callable[[int], JobDescriptor],
    ) -> None:
        await self._governor.check_and_maybe_flush(job.aggregate)
        decision = self._guard.route(depth=job.depth, delay_seconds=delay_seconds)
        next_job = build_next(decision.depth)
        if decision.immediate:
            self._scheduler.dispatch_immediate(next_job)
        else:
            self._scheduler.dispatch_after(next_job, decision.delay_seconds)
        structured_log(
            logger,
            "info",
            "sync.hop_dispatched",
            route=decision.reason,
            delay_seconds=decision.delay_seconds,
            next_start_index=next_job.start_index,
            next_attempt=next_job.attempt,
            next_depth=next_job.depth,
            **job.log_fields(),
        )

    async def _finish(self, job: JobDescriptor, *, kind: SyncLogKind, title: str, outcome: str) -> None:
        aggregate = job.aggregate
        structured_log(
            logger,
            kind.log_level,
            "sync.run_finished",
            outcome=outcome,
            **aggregate.counts(),
            **job.log_fields(),
        )
        await self._log_sink.write_log(kind, title, aggregate.summary())
