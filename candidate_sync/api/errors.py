from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exception_handlers import (
    http_exception_handler as fastapi_http_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

from candidate_sync.api.responses import error_response

API_PATH_PREFIX = "/api/"

# Status codes the framework raises on its own for sync routes.
_FRAMEWORK_ERROR_CODES = {
    404: "not_found",
    405: "method_not_allowed",
}


class ApiException(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


class SyncServiceUnavailable(ApiException):
    """Raised while the candidate sync service is not attached to the app."""

    def __init__(self) -> None:
        super().__init__(
            status_code=503,
            code="sync_unavailable",
            message="Candidate sync service is not running.",
        )


def register_api_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiException)
    async def _handle_api_exception(request: Request, exc: ApiException):
        return error_response(
            request,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
            details=exc.details,
        )

    # Registered on the Starlette base class so unmatched routes are covered too.
    @app.exception_handler(HTTPException)
    async def _handle_http_exception(request: Request, exc: HTTPException):
        # /healthz keeps FastAPI's plain {"detail": ...} body.
        if not request.url.path.startswith(API_PATH_PREFIX):
            return await fastapi_http_exception_handler(request, exc)
        return error_response(
            request,
            status_code=exc.status_code,
            code=_FRAMEWORK_ERROR_CODES.get(exc.status_code, "error"),
            message=str(exc.detail),
        )

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_exception(request: Request, exc: RequestValidationError):
        return error_response(
            request,
            status_code=422,
            code="validation_error",
            message="Sync request validation failed.",
            details=exc.errors(),
        )
