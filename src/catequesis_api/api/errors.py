"""
catequesis_api.api.errors

Uniform error envelope for every non-success response.

Responsibilities:
- Render gating rejections with their fixed status code and kind-specific fields.
- Render HTTP / validation errors and unexpected exceptions in the same envelope.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from catequesis_api.gating.rejections import GateRejected
from catequesis_api.observability.logging import get_logger

log = get_logger(__name__)


def envelope(request: Request, message: str, **fields: Any) -> dict[str, Any]:
    return {
        "success": False,
        "message": message,
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "path": request.url.path,
        "method": request.method,
        **fields,
    }


async def _gate_rejected(request: Request, exc: GateRejected) -> JSONResponse:
    rejection = exc.rejection
    headers: dict[str, str] = {}
    if rejection.retry_after_seconds is not None:
        headers["Retry-After"] = str(rejection.retry_after_seconds)
    if rejection.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    return JSONResponse(
        envelope(request, rejection.message, **rejection.details()),
        status_code=rejection.status_code,
        headers=headers or None,
    )


async def _http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        envelope(request, str(exc.detail)),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        envelope(request, "Validation error", details=details),
        status_code=422,
    )


async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    log.exception("unhandled_error", error_type=type(exc).__name__)
    return JSONResponse(
        envelope(request, "Internal server error"),
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GateRejected, _gate_rejected)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled)


# --- Module Notes -----------------------------------------------------------
# Rejection kinds are rendered as-is (`code`); the boundary only adds request context.
