from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from candidate_sync.logging_utils import structured_log
from candidate_sync.settings import settings

logger = logging.getLogger(__name__)

USER_AGENT = "candidate-sync/1.0"


class SourcePayloadError(Exception):
    pass


@dataclass(frozen=True)
class FetchResult:
    requested_url: str
    status_code: int | None
    records: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CandidateSource(Protocol):
    async def fetch_page(
        self,
        *,
        start_index: int,
        page_size: int,
        fault_mode: str | None,
        variant: str,
    ) -> FetchResult: ...

    async def fetch_all(self, *, variant: str) -> FetchResult: ...


def extract_records(payload: Any) -> list[dict[str, Any]]:
    """Accept either a bare JSON list or an object wrapping a ``records`` list."""
    if isinstance(payload, dict) and "records" in payload:
        payload = payload["records"]
    if not isinstance(payload, list):
        raise SourcePayloadError(f"Expected a list of records, got {type(payload).__name__}.")
    records: list[dict[str, Any]] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise SourcePayloadError(f"Record at position {index} is not an object.")
        records.append(item)
    return records


class LiveCandidateSource:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.source_base_url).rstrip("/")
        configured_key = settings.source_api_key if api_key is None else api_key
        self._api_key = configured_key.strip() or None
        self._timeout_seconds = float(
            settings.sync_fetch_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if self._api_key is not None:
            headers["X-API-Key"] = self._api_key
        return headers

    def _variant_url(self, variant: str) -> str:
        return f"{self._base_url}/{variant.strip('/')}"

    async def fetch_page(
        self,
        *,
        start_index: int,
        page_size: int,
        fault_mode: str | None,
        variant: str,
    ) -> FetchResult:
        params: dict[str, str] = {
            "startIndex": str(start_index),
            "pageSize": str(page_size),
        }
        if fault_mode:
            params["faultMode"] = fault_mode
        return await self._get(self._variant_url(variant), params=params)

    async def fetch_all(self, *, variant: str) -> FetchResult:
        return await self._get(self._variant_url(variant), params={})

    async def _get(self, url: str, *, params: dict[str, str]) -> FetchResult:
        requested_url = str(httpx.URL(url, params=params))
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                follow_redirects=True,
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                response = await client.get(url, params=params)
        except httpx.TimeoutException as exc:
            return self._failure(requested_url, None, f"timeout after {self._timeout_seconds:g}s: {exc}")
        except httpx.HTTPError as exc:
            return self._failure(requested_url, None, f"{type(exc).__name__}: {exc}")

        if response.status_code >= 400:
            return self._failure(
                requested_url,
                response.status_code,
                f"HTTP {response.status_code}: {response.text[:500]}",
            )
        try:
            records = extract_records(response.json())
        except ValueError as exc:
            return self._failure(requested_url, response.status_code, f"invalid JSON payload: {exc}")
        except SourcePayloadError as exc:
            return self._failure(requested_url, response.status_code, str(exc))

        structured_log(
            logger,
            "debug",
            "source.fetch_succeeded",
            requested_url=requested_url,
            status_code=response.status_code,
            record_count=len(records),
        )
        return FetchResult(
            requested_url=requested_url,
            status_code=response.status_code,
            records=records,
        )

    @staticmethod
    def _failure(requested_url: str, status_code: int | None, message: str) -> FetchResult:
        structured_log(
            logger,
            "warning",
            "source.fetch_failed",
            requested_url=requested_url,
            status_code=status_code,
            error=message,
        )
        return FetchResult(
            requested_url=requested_url,
            status_code=status_code,
            error=message,
        )
