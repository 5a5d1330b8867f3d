from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ApiMeta(BaseModel):
    request_id: str | None = None

    model_config = ConfigDict(extra="forbid")


class StartSyncRunRequest(BaseModel):
    variant: str = Field(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_\-]+$")
    fault_mode: str | None = Field(default=None, max_length=64)
    page_size: int | None = Field(default=None, ge=1, le=2000)
    start_index: int = Field(default=1, ge=1)

    model_config = ConfigDict(extra="forbid")


class StartBatchSyncRequest(BaseModel):
    variant: str = Field(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_\-]+$")

    model_config = ConfigDict(extra="forbid")


class SyncRunStartedData(BaseModel):
    run_tag: str
    variant: str
    start_index: int
    page_size: int

    model_config = ConfigDict(extra="forbid")


class SyncRunStartedEnvelope(BaseModel):
    data: SyncRunStartedData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class SyncRunStatusData(BaseModel):
    run_tag: str
    pending_retry_count: int

    model_config = ConfigDict(extra="forbid")


class SyncRunStatusEnvelope(BaseModel):
    data: SyncRunStatusData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class SyncCountsData(BaseModel):
    run_tag: str
    received: int
    upserted: int
    inserted: int
    updated: int
    errored: int
    error_log: list[str]

    model_config = ConfigDict(extra="forbid")


class SyncCountsEnvelope(BaseModel):
    data: SyncCountsData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")
