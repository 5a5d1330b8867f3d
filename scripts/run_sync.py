#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json

from candidate_sync.db.session import close_engine
from candidate_sync.logging_config import configure_logging, parse_redact_fields
from candidate_sync.services.sync.application import CandidateSyncService
from candidate_sync.services.sync.dispatch import SimulationDispatchScheduler
from candidate_sync.settings import settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync candidates from the external source.")
    parser.add_argument("variant", help="Source variant to pull, e.g. 'active'.")
    parser.add_argument("--fault-mode", default=None, help="Fault mode forwarded to the source.")
    parser.add_argument("--page-size", type=int, default=None, help="Override SYNC_PAGE_SIZE.")
    parser.add_argument(
        "--batch",
        action="store_true",
        help="Run the one-shot unpaged variant instead of a paged run.",
    )
    parser.add_argument(
        "--single-hop",
        action="store_true",
        help="Execute only the first page attempt and print the dispatches it would make.",
    )
    return parser


async def _run_batch(variant: str) -> dict:
    service = CandidateSyncService()
    aggregate = await service.run_batch(variant=variant)
    return {"run_tag": aggregate.run_tag, **aggregate.counts()}


async def _run_single_hop(variant: str, *, fault_mode: str | None, page_size: int | None) -> dict:
    scheduler = SimulationDispatchScheduler()
    service = CandidateSyncService(scheduler=scheduler)
    job = service.start_run(variant=variant, fault_mode=fault_mode, page_size=page_size)
    first_hop = scheduler.dispatches.pop(0).job
    await service.controller.execute(first_hop)
    return {
        "run_tag": job.run_tag,
        **job.aggregate.counts(),
        "dispatches": [
            {
                "start_index": entry.job.start_index,
                "attempt": entry.job.attempt,
                "depth": entry.job.depth,
                "delay_seconds": entry.delay_seconds,
            }
            for entry in scheduler.dispatches
        ],
    }


async def _run_paged(variant: str, *, fault_mode: str | None, page_size: int | None) -> dict:
    service = CandidateSyncService()
    await service.start()
    try:
        job = service.start_run(variant=variant, fault_mode=fault_mode, page_size=page_size)
        await service.scheduler.wait_idle()
    finally:
        await service.stop()
    return {"run_tag": job.run_tag, **job.aggregate.counts()}


async def _run(args: argparse.Namespace) -> dict:
    try:
        if args.batch:
            return await _run_batch(args.variant)
        if args.single_hop:
            return await _run_single_hop(args.variant, fault_mode=args.fault_mode, page_size=args.page_size)
        return await _run_paged(args.variant, fault_mode=args.fault_mode, page_size=args.page_size)
    finally:
        await close_engine()


def main() -> int:
    args = build_parser().parse_args()
    configure_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        redact_fields=parse_redact_fields(settings.log_redact_fields),
        include_uvicorn_access=False,
    )

    try:
        report = asyncio.run(_run(args))
    except Exception as exc:
        print(json.dumps({"status": "failed", "error": str(exc)}, indent=2))
        return 1

    print(json.dumps(report, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
