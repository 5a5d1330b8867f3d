from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any

from candidate_sync.services.candidates.upsert import UpsertError, UpsertOutcome

# Each appended character is counted as two bytes (UTF-16 code units).
BYTES_PER_CHAR = 2


def new_run_tag() -> str:
    return uuid.uuid4().hex


def format_fetch_failure(*, start_index: int, page_size: int, attempt: int, message: str) -> str:
    return f"Fetch failed: startIndex={start_index} pageSize={page_size} attempt={attempt} error={message}"


def format_fetch_success(*, start_index: int, page_size: int, attempt: int, record_count: int) -> str:
    return (
        f"Fetch succeeded: startIndex={start_index} pageSize={page_size} attempt={attempt} records={record_count}"
    )


def format_record_error(record: dict[str, Any], errors: tuple[UpsertError, ...]) -> str:
    lines = [json.dumps(record, sort_keys=True, default=str)]
    for error in errors:
        lines.append(f"  {error.code} [{', '.join(error.fields)}]: {error.message}")
    return "\n".join(lines)


@dataclass
class SyncAggregate:
    """Running statistics shared by every hop of one paged run.

    Exactly one hop owns the aggregate at a time; it travels with the job
    descriptor from hop to hop and is never copied.
    """

    run_tag: str = field(default_factory=new_run_tag)
    received: int = 0
    upserted: int = 0
    inserted: int = 0
    updated: int = 0
    errored: int = 0
    call_log: list[str] = field(default_factory=list)
    error_log: list[str] = field(default_factory=list)
    estimated_bytes: int = 0

    @property
    def has_errors(self) -> bool:
        return bool(self.error_log)

    def record_call(self, entry: str) -> None:
        self.call_log.append(entry)
        self.estimated_bytes += len(entry) * BYTES_PER_CHAR

    def record_error(self, entry: str) -> None:
        self.error_log.append(entry)
        self.estimated_bytes += len(entry) * BYTES_PER_CHAR

    def record_received(self, count: int) -> None:
        self.received += max(0, int(count))

    def apply_outcome(self, record: dict[str, Any], outcome: UpsertOutcome) -> None:
        if not outcome.success:
            self.errored += 1
            self.record_error(format_record_error(record, outcome.errors))
            return
        self.upserted += 1
        if outcome.created:
            self.inserted += 1
        else:
            self.updated += 1

    def apply_page(self, records: list[dict[str, Any]], outcomes: list[UpsertOutcome]) -> None:
        # Nothing is counted until every record has an outcome.
        if len(outcomes) != len(records):
            raise ValueError(f"Upsert returned {len(outcomes)} outcomes for {len(records)} records.")
        self.record_received(len(records))
        for record, outcome in zip(records, outcomes):
            self.apply_outcome(record, outcome)

    def reset(self) -> None:
        self.received = 0
        self.upserted = 0
        self.inserted = 0
        self.updated = 0
        self.errored = 0
        self.call_log = []
        self.error_log = []
        self.estimated_bytes = 0

    def counts(self) -> dict[str, int]:
        return {
            "received": self.received,
            "upserted": self.upserted,
            "inserted": self.inserted,
            "updated": self.updated,
            "errored": self.errored,
        }

    def summary(self) -> str:
        lines = [
            f"Run: {self.run_tag}",
            f"Received Candidates: {self.received}",
            f"Upserted Candidates: {self.upserted}",
            f"Inserted Candidates: {self.inserted}",
            f"Updated Candidates: {self.updated}",
            f"Candidates with Errors: {self.errored}",
            "",
            "Call Log:",
            "\n".join(self.call_log) if self.call_log else "(empty)",
            "",
            "Error Log:",
            "\n".join(self.error_log) if self.error_log else "(empty)",
        ]
        return "\n".join(lines)
