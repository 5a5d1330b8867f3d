from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from candidate_sync.db.models import SyncLogEntry, SyncLogKind
from candidate_sync.db.session import get_session_factory
from candidate_sync.logging_context import get_run_tag
from candidate_sync.logging_utils import structured_log
from candidate_sync.settings import settings

logger = logging.getLogger(__name__)

TRUNCATED_MARKER = "(truncated...)"
END_OF_TRUNCATED_MARKER = "(end of truncated message)"
PART_FRACTION = 0.9
# One body character, the newline and the longer marker.
MIN_SPLIT_CAPACITY = len(END_OF_TRUNCATED_MARKER) + 2
TITLE_MAX_LENGTH = 255


def split_log_body(body: str, *, capacity: int) -> list[str]:
    """Split ``body`` into ordered parts that each fit a field of ``capacity`` characters.

    Bodies that already fit are returned unchanged as a single part. Longer
    bodies are cut into chunks of 90% of the capacity, shrunk further when the
    marker would not fit; every chunk but the last is followed by the
    truncation marker and the last by the end marker, so a reader can tell a
    complete message from a cut one.
    """
    if capacity < MIN_SPLIT_CAPACITY:
        raise ValueError(f"capacity must be at least {MIN_SPLIT_CAPACITY}")
    if len(body) <= capacity:
        return [body]
    chunk_size = min(int(capacity * PART_FRACTION), capacity - len(END_OF_TRUNCATED_MARKER) - 1)
    chunks = [body[offset : offset + chunk_size] for offset in range(0, len(body), chunk_size)]
    parts: list[str] = []
    for index, chunk in enumerate(chunks):
        marker = END_OF_TRUNCATED_MARKER if index == len(chunks) - 1 else TRUNCATED_MARKER
        parts.append(f"{chunk}\n{marker}")
    return parts


def part_title(title: str, *, part_number: int, part_count: int) -> str:
    if part_count > 1:
        suffix = f" (part {part_number} of {part_count})"
    else:
        suffix = ""
    return title[: TITLE_MAX_LENGTH - len(suffix)] + suffix


class SyncLogWriter:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        body_capacity: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._body_capacity = max(
            MIN_SPLIT_CAPACITY,
            int(settings.sync_log_body_capacity if body_capacity is None else body_capacity),
        )

    async def write_log(self, kind: SyncLogKind | str, title: str, body: str) -> int:
        normalized_kind = SyncLogKind(str(kind).upper())
        parts = split_log_body(body, capacity=self._body_capacity)
        run_tag = get_run_tag()
        structured_log(
            logger,
            normalized_kind.log_level,
            "sync_log.written",
            kind=normalized_kind.value,
            title=title,
            part_count=len(parts),
            body_length=len(body),
        )
        entries = [
            SyncLogEntry(
                kind=normalized_kind.value,
                title=part_title(title, part_number=index, part_count=len(parts)),
                body=part,
                part_number=index,
                part_count=len(parts),
                run_tag=run_tag,
            )
            for index, part in enumerate(parts, start=1)
        ]
        session_factory = self._session_factory or get_session_factory()
        try:
            async with session_factory() as db_session:
                db_session.add_all(entries)
                await db_session.commit()
        except SQLAlchemyError:
            # The body must still reach an operator when the store is down.
            logger.exception(
                "sync_log.persist_failed",
                extra={"kind": normalized_kind.value, "title": title, "body": body},
            )
        return len(parts)
