from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from candidate_sync.db.models import (
    CANDIDATE_EMAIL_MAX_LENGTH,
    CANDIDATE_EXTERNAL_ID_MAX_LENGTH,
    CANDIDATE_NAME_MAX_LENGTH,
    CANDIDATE_PHONE_MAX_LENGTH,
    Candidate,
)
from candidate_sync.db.session import get_session_factory
from candidate_sync.logging_utils import structured_log

logger = logging.getLogger(__name__)

DEFAULT_MATCH_KEY = "external_id"
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Column name -> max length. The match key is checked separately.
_STRING_FIELDS: dict[str, int] = {
    "first_name": CANDIDATE_NAME_MAX_LENGTH,
    "last_name": CANDIDATE_NAME_MAX_LENGTH,
    "email": CANDIDATE_EMAIL_MAX_LENGTH,
    "phone": CANDIDATE_PHONE_MAX_LENGTH,
}


@dataclass(frozen=True)
class UpsertError:
    code: str
    fields: tuple[str, ...]
    message: str


@dataclass(frozen=True)
class UpsertOutcome:
    success: bool
    created: bool
    errors: tuple[UpsertError, ...] = field(default_factory=tuple)
    external_id: str | None = None


def _text_value(record: dict[str, Any], key: str) -> str | None:
    value = record.get(key)
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


def validate_candidate_record(record: dict[str, Any], *, match_key: str) -> list[UpsertError]:
    errors: list[UpsertError] = []
    external_id = _text_value(record, match_key)
    if external_id is None:
        errors.append(
            UpsertError(
                code="REQUIRED_FIELD_MISSING",
                fields=(match_key,),
                message=f"Required fields are missing: [{match_key}]",
            )
        )
    elif len(external_id) > CANDIDATE_EXTERNAL_ID_MAX_LENGTH:
        errors.append(
            UpsertError(
                code="STRING_TOO_LONG",
                fields=(match_key,),
                message=f"{match_key}: data value too large (max length={CANDIDATE_EXTERNAL_ID_MAX_LENGTH})",
            )
        )
    if _text_value(record, "last_name") is None:
        errors.append(
            UpsertError(
                code="REQUIRED_FIELD_MISSING",
                fields=("last_name",),
                message="Required fields are missing: [last_name]",
            )
        )
    for name, max_length in _STRING_FIELDS.items():
        value = _text_value(record, name)
        if value is not None and len(value) > max_length:
            errors.append(
                UpsertError(
                    code="STRING_TOO_LONG",
                    fields=(name,),
                    message=f"{name}: data value too large (max length={max_length})",
                )
            )
    email = _text_value(record, "email")
    if email is not None and not EMAIL_RE.match(email):
        errors.append(
            UpsertError(
                code="INVALID_EMAIL_ADDRESS",
                fields=("email",),
                message=f"email: invalid email address: {email}",
            )
        )
    return errors


def _apply_fields(candidate: Candidate, record: dict[str, Any], *, variant: str | None) -> None:
    for name in _STRING_FIELDS:
        if name in record:
            setattr(candidate, name, _text_value(record, name))
    if variant is not None:
        candidate.source_variant = variant
    candidate.payload = dict(record)


class CandidateUpserter:
    """Upserts candidate records matched on an external key.

    Each record is written inside its own SAVEPOINT, so a record that fails
    validation or violates a constraint never rolls back its siblings.
    """

    def __init__(self, *, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory

    def _factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    async def upsert(
        self,
        records: list[dict[str, Any]],
        *,
        match_key: str = DEFAULT_MATCH_KEY,
        variant: str | None = None,
    ) -> list[UpsertOutcome]:
        outcomes: list[UpsertOutcome] = []
        async with self._factory()() as db_session:
            for record in records:
                outcomes.append(
                    await self._upsert_one(
                        db_session,
                        record=record,
                        match_key=match_key,
                        variant=variant,
                    )
                )
            await db_session.commit()
        structured_log(
            logger,
            "debug",
            "candidates.upsert_batch_committed",
            record_count=len(records),
            failed_count=sum(1 for outcome in outcomes if not outcome.success),
        )
        return outcomes

    async def _upsert_one(
        self,
        db_session: AsyncSession,
        *,
        record: dict[str, Any],
        match_key: str,
        variant: str | None,
    ) -> UpsertOutcome:
        external_id = _text_value(record, match_key)
        errors = validate_candidate_record(record, match_key=match_key)
        if errors:
            return UpsertOutcome(success=False, created=False, errors=tuple(errors), external_id=external_id)
        try:
            async with db_session.begin_nested():
                created = await self._write_candidate(
                    db_session,
                    external_id=external_id,
                    record=record,
                    variant=variant,
                )
        except IntegrityError as exc:
            return UpsertOutcome(
                success=False,
                created=False,
                errors=(UpsertError(code="DUPLICATE_VALUE", fields=(match_key,), message=str(exc.orig)),),
                external_id=external_id,
            )
        except DataError as exc:
            return UpsertOutcome(
                success=False,
                created=False,
                errors=(UpsertError(code="INVALID_FIELD", fields=(), message=str(exc.orig)),),
                external_id=external_id,
            )
        return UpsertOutcome(success=True, created=created, external_id=external_id)

    @staticmethod
    async def _write_candidate(
        db_session: AsyncSession,
        *,
        external_id: str,
        record: dict[str, Any],
        variant: str | None,
    ) -> bool:
        result = await db_session.execute(select(Candidate).where(Candidate.external_id == external_id))
        candidate = result.scalar_one_or_none()
        created = candidate is None
        if candidate is None:
            candidate = Candidate(external_id=external_id)
            db_session.add(candidate)
        _apply_fields(candidate, record, variant=variant)
        await db_session.flush()
        return created
