from dataclasses import dataclass
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    return float(value)


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip() or default


@dataclass(frozen=True)
class Settings:
    app_name: str = os.getenv("APP_NAME", "candidate-sync")
    database_url: str = os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://candidates:candidates@db:5432/candidates",
    )
    database_pool_mode: str = _env_str("DATABASE_POOL_MODE", "auto")
    database_pool_size: int = _env_int("DATABASE_POOL_SIZE", 5)
    database_pool_max_overflow: int = _env_int("DATABASE_POOL_MAX_OVERFLOW", 10)
    database_pool_timeout_seconds: int = _env_int("DATABASE_POOL_TIMEOUT_SECONDS", 30)
    log_level: str = _env_str("LOG_LEVEL", "INFO")
    log_format: str = _env_str("LOG_FORMAT", "console")
    log_requests: bool = _env_bool("LOG_REQUESTS", True)
    log_uvicorn_access: bool = _env_bool("LOG_UVICORN_ACCESS", False)
    log_request_skip_paths: str = _env_str("LOG_REQUEST_SKIP_PATHS", "/healthz")
    log_redact_fields: str = os.getenv("LOG_REDACT_FIELDS", "")
    source_base_url: str = _env_str("SOURCE_BASE_URL", "http://localhost:8080/candidates")
    source_api_key: str = os.getenv("SOURCE_API_KEY", "")
    sync_page_size: int = _env_int("SYNC_PAGE_SIZE", 100)
    sync_max_attempts: int = _env_int("SYNC_MAX_ATTEMPTS", 3)
    sync_delay_between_attempts_seconds: int = _env_int(
        "SYNC_DELAY_BETWEEN_ATTEMPTS_SECONDS",
        0,
    )
    sync_max_aggregate_memory_percent: float = _env_float(
        "SYNC_MAX_AGGREGATE_MEMORY_PERCENT",
        50.0,
    )
    sync_memory_ceiling_bytes: int = _env_int("SYNC_MEMORY_CEILING_BYTES", 12_000_000)
    sync_max_chain_depth: int = _env_int("SYNC_MAX_CHAIN_DEPTH", 5)
    sync_chain_break_cooldown_seconds: int = _env_int(
        "SYNC_CHAIN_BREAK_COOLDOWN_SECONDS",
        5,
    )
    sync_fetch_timeout_seconds: float = _env_float("SYNC_FETCH_TIMEOUT_SECONDS", 120.0)
    sync_log_body_capacity: int = _env_int("SYNC_LOG_BODY_CAPACITY", 131_072)


settings = Settings()
