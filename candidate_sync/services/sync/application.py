from __future__ import annotations

import logging

from candidate_sync.logging_utils import structured_log
from candidate_sync.services.candidates.upsert import CandidateUpserter
from candidate_sync.services.source.client import CandidateSource, LiveCandidateSource
from candidate_sync.services.sync.aggregate import SyncAggregate
from candidate_sync.services.sync.batch import BatchSync
from candidate_sync.services.sync.controller import PagingController
from candidate_sync.services.sync.dispatch import AsyncioDispatchScheduler, DispatchScheduler
from candidate_sync.services.sync.types import (
    JobDescriptor,
    RecordUpserter,
    SyncLogSink,
    SyncPolicyConfig,
)
from candidate_sync.services.sync_log.writer import SyncLogWriter

logger = logging.getLogger(__name__)


class CandidateSyncService:
    def __init__(
        self,
        *,
        source: CandidateSource | None = None,
        upserter: RecordUpserter | None = None,
        log_sink: SyncLogSink | None = None,
        scheduler: DispatchScheduler | None = None,
        config: SyncPolicyConfig | None = None,
    ) -> None:
        self._config = config or SyncPolicyConfig.from_settings()
        self._source = source or LiveCandidateSource()
        self._upserter = upserter or CandidateUpserter()
        self._log_sink = log_sink or SyncLogWriter()
        self._scheduler = scheduler or AsyncioDispatchScheduler()
        self._controller = PagingController(
            source=self._source,
            upserter=self._upserter,
            log_sink=self._log_sink,
            scheduler=self._scheduler,
            config=self._config,
        )
        binder = getattr(self._scheduler, "bind", None)
        if callable(binder):
            binder(self._controller.execute)
        self._batch = BatchSync(
            source=self._source,
            upserter=self._upserter,
            log_sink=self._log_sink,
        )

    @property
    def config(self) -> SyncPolicyConfig:
        return self._config

    @property
    def scheduler(self) -> DispatchScheduler:
        return self._scheduler

    @property
    def controller(self) -> PagingController:
        return self._controller

    async def start(self) -> None:
        starter = getattr(self._scheduler, "start", None)
        if callable(starter):
            starter()
        structured_log(
            logger,
            "info",
            "sync.service_started",
            max_attempts=self._config.max_attempts,
            delay_between_attempts_seconds=self._config.delay_between_attempts_seconds,
            max_chain_depth=self._config.max_chain_depth,
            chain_break_cooldown_seconds=self._config.chain_break_cooldown_seconds,
            max_aggregate_memory_percent=self._config.max_aggregate_memory_percent,
            memory_ceiling_bytes=self._config.memory_ceiling_bytes,
            page_size=self._config.page_size,
        )

    async def stop(self) -> None:
        stopper = getattr(self._scheduler, "stop", None)
        if callable(stopper):
            await stopper()
        structured_log(logger, "info", "sync.service_stopped")

    def start_run(
        self,
        *,
        variant: str,
        fault_mode: str | None = None,
        page_size: int | None = None,
        start_index: int = 1,
    ) -> JobDescriptor:
        job = JobDescriptor(
            aggregate=SyncAggregate(),
            start_index=start_index,
            page_size=page_size or self._config.page_size,
            variant=variant,
            fault_mode=fault_mode,
        )
        structured_log(logger, "info", "sync.run_started", **job.log_fields())
        self._scheduler.dispatch_immediate(job)
        return job

    async def run_batch(self, *, variant: str) -> SyncAggregate:
        return await self._batch.run(variant=variant)

    def pending_retry_count(self, run_tag: str) -> int:
        counter = getattr(self._scheduler, "pending_count", None)
        if not callable(counter):
            return 0
        return int(counter(run_tag))
