"""
catequesis_api.api.gating

HTTP boundary of the request-gating pipeline.

Responsibilities:
- Build the `GateContext` from an inbound request (bearer credential, origin, route).
- Run the required-auth, optional-auth or public pipeline entry point.
- Raise `GateRejected` for rejections; render handler outcomes as JSON responses.
"""

from __future__ import annotations

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from catequesis_api.auth.models import Principal
from catequesis_api.gating.context import (
    GateContext,
    Handler,
    HandlerOutcome,
    OptionalHandler,
    ResourceParishLookup,
)
from catequesis_api.gating.pipeline import Pipeline
from catequesis_api.gating.policy import RoutePolicy
from catequesis_api.gating.rejections import GateRejected, Rejection


def get_pipeline(request: Request) -> Pipeline:
    # The pipeline is built once in `api.app.create_app` and kept on app.state.
    return request.app.state.pipeline  # type: ignore[attr-defined]


def bearer_credential(request: Request) -> str | None:
    """
    Raw bearer value, or None when no credential was sent.

    A header with another scheme is passed through as-is so the verifier rejects it
    as invalid rather than treating the caller as anonymous.
    """

    header = request.headers.get("authorization")
    if not header or not header.strip():
        return None
    scheme, _, value = header.strip().partition(" ")
    if scheme.lower() == "bearer":
        return value.strip() or None
    return header


def client_origin(request: Request) -> str:
    if request.app.state.settings.trust_forwarded_for:  # type: ignore[attr-defined]
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def build_context(
    request: Request,
    policy: RoutePolicy,
    *,
    resource_parish: ResourceParishLookup | None = None,
) -> GateContext:
    return GateContext(
        policy=policy,
        path=request.url.path,
        method=request.method,
        credential=bearer_credential(request),
        origin=client_origin(request),
        resource_parish=resource_parish,
    )


def _bind(principal: Principal | None) -> None:
    if principal is not None:
        structlog.contextvars.bind_contextvars(principal_id=principal.id)


def _render(result: HandlerOutcome | Rejection) -> JSONResponse:
    if isinstance(result, Rejection):
        raise GateRejected(result)
    return JSONResponse(result.body, status_code=result.status_code)


async def guard(
    request: Request,
    policy: RoutePolicy,
    handler: Handler,
    *,
    resource_parish: ResourceParishLookup | None = None,
) -> JSONResponse:
    """Run the required-auth pipeline; the handler always gets a Principal."""

    ctx = build_context(request, policy, resource_parish=resource_parish)

    async def bound(principal: Principal) -> HandlerOutcome:
        _bind(principal)
        return await handler(principal)

    return _render(await get_pipeline(request).run(ctx, bound))


async def guard_optional(
    request: Request,
    policy: RoutePolicy,
    handler: OptionalHandler,
) -> JSONResponse:
    """
    Serve a route that works without a token.

    Public policies (login) ignore any credential; otherwise a sent credential is
    still verified and only its absence yields an anonymous call.
    """

    pipeline = get_pipeline(request)
    ctx = build_context(request, policy)

    async def bound(principal: Principal | None) -> HandlerOutcome:
        _bind(principal)
        return await handler(principal)

    if policy.public:
        return _render(await pipeline.run_public(ctx, bound))
    return _render(await pipeline.run_optional(ctx, bound))


# --- Module Notes -----------------------------------------------------------
# Routers pass a closure as the handler; it receives the admitted Principal (or
# None on optional and public routes) and returns a `HandlerOutcome`.
