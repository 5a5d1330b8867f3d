from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from starlette.requests import Request
from starlette.responses import JSONResponse


def envelope_meta(request: Request) -> dict[str, Any]:
    """Meta block shared by data and error envelopes.

    The request id is set by RequestLoggingMiddleware and is missing only
    when the middleware is not installed.
    """
    return {"request_id": getattr(request.state, "request_id", None)}


def success_payload(request: Request, *, data: Any) -> dict[str, Any]:
    return {"data": data, "meta": envelope_meta(request)}


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    payload = {
        "error": {"code": code, "message": message, "details": details},
        "meta": envelope_meta(request),
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))
