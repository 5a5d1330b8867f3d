from __future__ import annotations

from typing import Any

from candidate_sync.services.candidates.upsert import UpsertError, UpsertOutcome
from candidate_sync.services.source.client import FetchResult


def make_records(count: int, *, start: int = 1) -> list[dict[str, Any]]:
    return [
        {
            "external_id": f"C-{number:05d}",
            "first_name": "Ada",
            "last_name": f"Candidate {number}",
            "email": f"candidate{number}@example.test",
        }
        for number in range(start, start + count)
    ]


def ok_result(records: list[dict[str, Any]]) -> FetchResult:
    return FetchResult(requested_url="https://source.test/candidates/active", status_code=200, records=records)


def failed_result(message: str = "HTTP 503: unavailable", status_code: int | None = 503) -> FetchResult:
    return FetchResult(
        requested_url="https://source.test/candidates/active",
        status_code=status_code,
        error=message,
    )


class ScriptedSource:
    """Returns the scripted results in order; the last one repeats."""

    def __init__(self, results: list[FetchResult]) -> None:
        self._results = list(results)
        self.calls: list[dict[str, Any]] = []

    async def fetch_page(
        self,
        *,
        start_index: int,
        page_size: int,
        fault_mode: str | None,
        variant: str,
    ) -> FetchResult:
        self.calls.append(
            {
                "start_index": start_index,
                "page_size": page_size,
                "fault_mode": fault_mode,
                "variant": variant,
            }
        )
        if len(self._results) > 1:
            return self._results.pop(0)
        return self._results[0]

    async def fetch_all(self, *, variant: str) -> FetchResult:
        self.calls.append({"variant": variant})
        return self._results[0]


class PagedSource:
    """Serves ``total`` generated records by 1-based window."""

    def __init__(self, total: int) -> None:
        self._records = make_records(total)
        self.calls: list[tuple[int, int]] = []

    async def fetch_page(
        self,
        *,
        start_index: int,
        page_size: int,
        fault_mode: str | None,
        variant: str,
    ) -> FetchResult:
        self.calls.append((start_index, page_size))
        offset = start_index - 1
        return ok_result(self._records[offset : offset + page_size])

    async def fetch_all(self, *, variant: str) -> FetchResult:
        return ok_result(list(self._records))


class InMemoryUpserter:
    def __init__(
        self,
        *,
        existing_keys: set[str] | None = None,
        failures: dict[str, UpsertError] | None = None,
    ) -> None:
        self.existing_keys: set[str] = set(existing_keys or set())
        self._failures = dict(failures or {})
        self.batches: list[list[dict[str, Any]]] = []

    async def upsert(
        self,
        records: list[dict[str, Any]],
        *,
        match_key: str = "external_id",
        variant: str | None = None,
    ) -> list[UpsertOutcome]:
        self.batches.append(list(records))
        outcomes: list[UpsertOutcome] = []
        for record in records:
            key = str(record[match_key])
            failure = self._failures.get(key)
            if failure is not None:
                outcomes.append(UpsertOutcome(success=False, created=False, errors=(failure,), external_id=key))
                continue
            created = key not in self.existing_keys
            self.existing_keys.add(key)
            outcomes.append(UpsertOutcome(success=True, created=created, external_id=key))
        return outcomes


class ExplodingUpserter:
    async def upsert(self, records, *, match_key="external_id", variant=None):
        raise ConnectionError("database went away")


class RecordingLogSink:
    def __init__(self) -> None:
        self.entries: list[tuple[str, str, str]] = []

    async def write_log(self, kind, title: str, body: str) -> int:
        self.entries.append((str(kind), title, body))
        return 1

    def kinds(self) -> list[str]:
        return [kind for kind, _title, _body in self.entries]
