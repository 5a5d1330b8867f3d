from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, HTTPException

from candidate_sync.api.errors import register_api_exception_handlers
from candidate_sync.api.router import router as api_router
from candidate_sync.db.session import check_database, close_engine
from candidate_sync.http.middleware import RequestLoggingMiddleware, parse_skip_paths
from candidate_sync.logging_config import configure_logging, parse_redact_fields
from candidate_sync.services.sync.application import CandidateSyncService
from candidate_sync.settings import settings

logger = logging.getLogger(__name__)

configure_logging(
    level=settings.log_level,
    log_format=settings.log_format,
    redact_fields=parse_redact_fields(settings.log_redact_fields),
    include_uvicorn_access=settings.log_uvicorn_access,
)


@asynccontextmanager
async def lifespan(application: FastAPI):
    sync_service = CandidateSyncService()
    await sync_service.start()
    application.state.sync_service = sync_service
    logger.info(
        "app.started",
        extra={
            "source_base_url": settings.source_base_url,
            "log_format": settings.log_format,
        },
    )
    yield
    application.state.sync_service = None
    await sync_service.stop()
    await close_engine()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
register_api_exception_handlers(app)
app.add_middleware(
    RequestLoggingMiddleware,
    log_requests=settings.log_requests,
    skip_paths=parse_skip_paths(settings.log_request_skip_paths),
)
app.include_router(api_router)


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    if await check_database():
        return {"status": "ok"}
    raise HTTPException(status_code=500, detail="database unavailable")
