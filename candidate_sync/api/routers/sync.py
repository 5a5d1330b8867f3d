from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from candidate_sync.api.errors import SyncServiceUnavailable
from candidate_sync.api.responses import success_payload
from candidate_sync.api.schemas.sync import (
    StartBatchSyncRequest,
    StartSyncRunRequest,
    SyncCountsEnvelope,
    SyncRunStartedEnvelope,
    SyncRunStatusEnvelope,
)
from candidate_sync.logging_utils import structured_log
from candidate_sync.services.sync.application import CandidateSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["api-sync"])


def get_sync_service(request: Request) -> CandidateSyncService:
    service = getattr(request.app.state, "sync_service", None)
    if service is None:
        raise SyncServiceUnavailable()
    return service


@router.post(
    "/runs",
    response_model=SyncRunStartedEnvelope,
    status_code=202,
)
async def start_sync_run(
    payload: StartSyncRunRequest,
    request: Request,
    service: CandidateSyncService = Depends(get_sync_service),
):
    job = service.start_run(
        variant=payload.variant,
        fault_mode=payload.fault_mode,
        page_size=payload.page_size,
        start_index=payload.start_index,
    )
    structured_log(
        logger,
        "info",
        "api.sync.run_started",
        run_tag=job.run_tag,
        variant=job.variant,
    )
    return success_payload(
        request,
        data={
            "run_tag": job.run_tag,
            "variant": job.variant,
            "start_index": job.start_index,
            "page_size": job.page_size,
        },
    )


@router.get(
    "/runs/{run_tag}",
    response_model=SyncRunStatusEnvelope,
)
async def get_sync_run(
    run_tag: str,
    request: Request,
    service: CandidateSyncService = Depends(get_sync_service),
):
    return success_payload(
        request,
        data={
            "run_tag": run_tag,
            "pending_retry_count": service.pending_retry_count(run_tag),
        },
    )


@router.post(
    "/batch",
    response_model=SyncCountsEnvelope,
)
async def run_batch_sync(
    payload: StartBatchSyncRequest,
    request: Request,
    service: CandidateSyncService = Depends(get_sync_service),
):
    aggregate = await service.run_batch(variant=payload.variant)
    return success_payload(
        request,
        data={
            "run_tag": aggregate.run_tag,
            **aggregate.counts(),
            "error_log": list(aggregate.error_log),
        },
    )
