from __future__ import annotations

import logging
import os
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from candidate_sync.logging_utils import structured_log
from candidate_sync.settings import Settings, settings

logger = logging.getLogger(__name__)

POOL_MODES = frozenset({"null", "queue"})

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def resolve_pool_mode(raw_mode: str) -> str:
    """Map DATABASE_POOL_MODE to "null" or "queue".

    "auto" picks NullPool under pytest, where every test loop gets its own
    connections, and a QueuePool for the long-running service.
    """
    mode = (raw_mode or "").strip().lower()
    if mode == "auto":
        return "null" if os.getenv("PYTEST_CURRENT_TEST") else "queue"
    if mode in POOL_MODES:
        return mode
    structured_log(
        logger,
        "warning",
        "db.invalid_pool_mode_fallback",
        database_pool_mode=raw_mode,
        fallback_mode="queue",
    )
    return "queue"


def engine_options(config: Settings, *, pool_mode: str) -> dict[str, Any]:
    options: dict[str, Any] = {
        "pool_pre_ping": True,
        # Shows up in pg_stat_activity next to the sync's upsert sessions.
        "connect_args": {"server_settings": {"application_name": config.app_name}},
    }
    if pool_mode == "null":
        options["poolclass"] = NullPool
        return options
    options["pool_size"] = max(1, int(config.database_pool_size))
    options["max_overflow"] = max(0, int(config.database_pool_max_overflow))
    options["pool_timeout"] = max(1, int(config.database_pool_timeout_seconds))
    return options


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        pool_mode = resolve_pool_mode(settings.database_pool_mode)
        _engine = create_async_engine(
            settings.database_url,
            **engine_options(settings, pool_mode=pool_mode),
        )
        structured_log(logger, "info", "db.engine_initialized", pool_mode=pool_mode)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory the candidate upserter and the sync log writer share."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def check_database() -> bool:
    try:
        async with get_engine().connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            return result.scalar_one() == 1
    except Exception:
        logger.exception("db.healthcheck_failed")
        return False


async def close_engine() -> None:
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    structured_log(logger, "info", "db.engine_disposed")
    _engine = None
    _session_factory = None
