from __future__ import annotations

from enum import StrEnum

from sqlalchemy import (
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from candidate_sync.db.base import Base, CreatedAtMixin, UpsertTimestampsMixin

CANDIDATE_EXTERNAL_ID_MAX_LENGTH = 64
CANDIDATE_NAME_MAX_LENGTH = 120
CANDIDATE_EMAIL_MAX_LENGTH = 255
CANDIDATE_PHONE_MAX_LENGTH = 40
CANDIDATE_SOURCE_VARIANT_MAX_LENGTH = 64


class SyncLogKind(StrEnum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"

    @property
    def log_level(self) -> str:
        return self.value.lower()


class Candidate(UpsertTimestampsMixin, Base):
    __tablename__ = "candidates"
    # RETURNING brings server-side timestamps back without a lazy load.
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[str] = mapped_column(
        String(CANDIDATE_EXTERNAL_ID_MAX_LENGTH),
        nullable=False,
        unique=True,
    )
    first_name: Mapped[str | None] = mapped_column(String(CANDIDATE_NAME_MAX_LENGTH))
    last_name: Mapped[str] = mapped_column(String(CANDIDATE_NAME_MAX_LENGTH), nullable=False)
    email: Mapped[str | None] = mapped_column(String(CANDIDATE_EMAIL_MAX_LENGTH))
    phone: Mapped[str | None] = mapped_column(String(CANDIDATE_PHONE_MAX_LENGTH))
    source_variant: Mapped[str | None] = mapped_column(String(CANDIDATE_SOURCE_VARIANT_MAX_LENGTH))
    payload: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )


class SyncLogEntry(CreatedAtMixin, Base):
    __tablename__ = "sync_log_entries"
    __table_args__ = (
        CheckConstraint(
            "kind IN ('INFO', 'WARNING', 'ERROR')",
            name="kind_valid",
        ),
        CheckConstraint(
            "part_number >= 1 AND part_number <= part_count",
            name="part_number_range",
        ),
        Index("ix_sync_log_entries_run_tag_created_at", "run_tag", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    part_number: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    part_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    run_tag: Mapped[str | None] = mapped_column(String(64))
