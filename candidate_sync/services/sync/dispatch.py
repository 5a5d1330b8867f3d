from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from candidate_sync.logging_context import set_run_tag
from candidate_sync.logging_utils import structured_log
from candidate_sync.services.sync.types import JobDescriptor

logger = logging.getLogger(__name__)

JobHandler = Callable[[JobDescriptor], Awaitable[None]]


class DispatchScheduler(Protocol):
    def dispatch_immediate(self, job: JobDescriptor) -> None: ...

    def dispatch_after(self, job: JobDescriptor, delay_seconds: int) -> None: ...

    def cancel_pending_retries(self, run_tag: str) -> int: ...


class AsyncioDispatchScheduler:
    """Runs each hop as its own asyncio task on the running loop.

    Immediate dispatches start a task right away. Delayed dispatches are timer
    handles keyed by run tag, so a resolved run can drop its stale retries.
    """

    def __init__(self, handler: JobHandler | None = None) -> None:
        self._handler = handler
        self._entry_ids = itertools.count(1)
        self._timers: dict[str, dict[int, asyncio.TimerHandle]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._accepting = False

    def bind(self, handler: JobHandler) -> None:
        self._handler = handler

    def start(self) -> None:
        if self._handler is None:
            raise RuntimeError("Dispatch scheduler has no job handler bound.")
        self._accepting = True
        structured_log(logger, "info", "dispatch.started")

    async def stop(self) -> None:
        self._accepting = False
        cancelled_timers = 0
        for run_tag in list(self._timers):
            cancelled_timers += self.cancel_pending_retries(run_tag)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        structured_log(
            logger,
            "info",
            "dispatch.stopped",
            cancelled_timers=cancelled_timers,
            cancelled_tasks=len(tasks),
        )

    def dispatch_immediate(self, job: JobDescriptor) -> None:
        if not self._accept(job):
            return
        self._spawn(job)

    def dispatch_after(self, job: JobDescriptor, delay_seconds: int) -> None:
        if not self._accept(job):
            return
        loop = asyncio.get_running_loop()
        fire_at = loop.time() + max(0, int(delay_seconds))
        entry_id = next(self._entry_ids)
        handle = loop.call_at(fire_at, self._fire, job, entry_id)
        self._timers.setdefault(job.run_tag, {})[entry_id] = handle
        structured_log(
            logger,
            "debug",
            "dispatch.scheduled",
            delay_seconds=int(delay_seconds),
            **job.log_fields(),
        )

    def cancel_pending_retries(self, run_tag: str) -> int:
        pending = self._timers.pop(run_tag, {})
        for handle in pending.values():
            handle.cancel()
        if pending:
            structured_log(
                logger,
                "info",
                "dispatch.pending_retries_cancelled",
                run_tag=run_tag,
                cancelled_count=len(pending),
            )
        return len(pending)

    def pending_count(self, run_tag: str | None = None) -> int:
        if run_tag is not None:
            return len(self._timers.get(run_tag, {}))
        return sum(len(entries) for entries in self._timers.values())

    def is_idle(self) -> bool:
        return not self._tasks and self.pending_count() == 0

    async def wait_idle(self, *, poll_seconds: float = 0.1) -> None:
        while not self.is_idle():
            await asyncio.sleep(poll_seconds)

    def _accept(self, job: JobDescriptor) -> bool:
        if self._accepting:
            return True
        structured_log(logger, "warning", "dispatch.rejected_not_running", **job.log_fields())
        return False

    def _fire(self, job: JobDescriptor, entry_id: int) -> None:
        pending = self._timers.get(job.run_tag)
        if pending is not None:
            pending.pop(entry_id, None)
            if not pending:
                self._timers.pop(job.run_tag, None)
        self._spawn(job)

    def _spawn(self, job: JobDescriptor) -> None:
        task = asyncio.get_running_loop().create_task(
            self._run(job),
            name=f"candidate-sync-hop-{job.run_tag}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, job: JobDescriptor) -> None:
        if self._handler is None:
            raise RuntimeError("Dispatch scheduler has no job handler bound.")
        set_run_tag(job.run_tag)
        try:
            await self._handler(job)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("dispatch.hop_failed", extra=job.log_fields())


@dataclass(frozen=True)
class RecordedDispatch:
    job: JobDescriptor
    delay_seconds: int | None

    @property
    def immediate(self) -> bool:
        return self.delay_seconds is None


class SimulationDispatchScheduler:
    """Records dispatches without running them, so each execution is a single hop."""

    def __init__(self) -> None:
        self.dispatches: list[RecordedDispatch] = []
        self.cancelled_run_tags: list[str] = []

    def dispatch_immediate(self, job: JobDescriptor) -> None:
        self.dispatches.append(RecordedDispatch(job=job, delay_seconds=None))

    def dispatch_after(self, job: JobDescriptor, delay_seconds: int) -> None:
        self.dispatches.append(RecordedDispatch(job=job, delay_seconds=int(delay_seconds)))

    def cancel_pending_retries(self, run_tag: str) -> int:
        self.cancelled_run_tags.append(run_tag)
        return 0

    @property
    def immediate(self) -> list[JobDescriptor]:
        return [entry.job for entry in self.dispatches if entry.immediate]

    @property
    def scheduled(self) -> list[RecordedDispatch]:
        return [entry for entry in self.dispatches if not entry.immediate]
