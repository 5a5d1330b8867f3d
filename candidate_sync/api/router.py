from __future__ import annotations

from fastapi import APIRouter

from candidate_sync.api.routers import sync

router = APIRouter(prefix="/api/v1")
router.include_router(sync.router)
