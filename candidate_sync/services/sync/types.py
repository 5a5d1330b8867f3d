from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Protocol

from candidate_sync.db.models import SyncLogKind
from candidate_sync.services.candidates.upsert import UpsertOutcome
from candidate_sync.services.sync.aggregate import SyncAggregate
from candidate_sync.settings import Settings, settings


@dataclass(frozen=True)
class JobDescriptor:
    aggregate: SyncAggregate
    start_index: int
    page_size: int
    variant: str
    fault_mode: str | None = None
    attempt: int = 1
    depth: int = 1

    def __post_init__(self) -> None:
        if self.start_index < 1:
            raise ValueError("start_index must be >= 1")
        if self.page_size < 1:
            raise ValueError("page_size must be > 0")
        if self.attempt < 1:
            raise ValueError("attempt must be >= 1")
        if self.depth < 1:
            raise ValueError("depth must be >= 1")

    @property
    def run_tag(self) -> str:
        return self.aggregate.run_tag

    def retry(self, *, depth: int) -> JobDescriptor:
        return replace(self, attempt=self.attempt + 1, depth=depth)

    def next_page(self, *, depth: int) -> JobDescriptor:
        return replace(self, start_index=self.start_index + self.page_size, attempt=1, depth=depth)

    def log_fields(self) -> dict[str, Any]:
        return {
            "run_tag": self.run_tag,
            "start_index": self.start_index,
            "page_size": self.page_size,
            "attempt": self.attempt,
            "depth": self.depth,
            "variant": self.variant,
        }


@dataclass(frozen=True)
class SyncPolicyConfig:
    max_attempts: int = 3
    delay_between_attempts_seconds: int = 0
    max_aggregate_memory_percent: float = 50.0
    memory_ceiling_bytes: int = 12_000_000
    max_chain_depth: int = 5
    chain_break_cooldown_seconds: int = 5
    page_size: int = 100

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> SyncPolicyConfig:
        resolved = source or settings
        return cls(
            max_attempts=max(1, int(resolved.sync_max_attempts)),
            delay_between_attempts_seconds=max(0, int(resolved.sync_delay_between_attempts_seconds)),
            max_aggregate_memory_percent=min(100.0, max(0.0, float(resolved.sync_max_aggregate_memory_percent))),
            memory_ceiling_bytes=max(1, int(resolved.sync_memory_ceiling_bytes)),
            max_chain_depth=max(1, int(resolved.sync_max_chain_depth)),
            chain_break_cooldown_seconds=max(1, int(resolved.sync_chain_break_cooldown_seconds)),
            page_size=max(1, int(resolved.sync_page_size)),
        )


class SyncLogSink(Protocol):
    async def write_log(self, kind: SyncLogKind | str, title: str, body: str) -> int: ...


class RecordUpserter(Protocol):
    async def upsert(
        self,
        records: list[dict[str, Any]],
        *,
        match_key: str = ...,
        variant: str | None = ...,
    ) -> list[UpsertOutcome]: ...
