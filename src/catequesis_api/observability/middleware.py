"""
catequesis_api.observability.middleware

HTTP middleware for request-scoped logging context.

Responsibilities:
- Generate/propagate request IDs.
- Bind request metadata into structlog contextvars.
- Emit one access log line per request with status and latency.
"""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from catequesis_api.observability.logging import get_logger

log = get_logger("catequesis_api.access")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Every request gets a request id; path/method/request id are bound for the
    lifetime of the request so gating and handler logs carry them implicitly.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
        )
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
            log.info(
                "request_completed",
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers["x-request-id"] = request_id
        return response


# --- Module Notes -----------------------------------------------------------
# Principal ids are not bound here: admission happens later, inside `api.gating`,
# which binds `principal_id` for the handler's own log lines.
