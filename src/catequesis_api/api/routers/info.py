"""
catequesis_api.api.routers.info

API index (`GET /api`), reachable with or without a token.
"""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from catequesis_api import __version__
from catequesis_api.api import policies
from catequesis_api.api.gating import guard_optional
from catequesis_api.auth.models import Principal
from catequesis_api.gating.context import HandlerOutcome

router = APIRouter(prefix="/api", tags=["info"])

ENDPOINTS = {
    "authentication": {
        "login": "POST /api/auth/login",
        "profile": "GET /api/auth/profile",
        "changePassword": "PUT /api/auth/change-password",
        "logout": "POST /api/auth/logout",
        "refresh": "POST /api/auth/refresh",
        "verify": "GET /api/auth/verify",
    },
    "parroquias": {
        "list": "GET /api/parroquias",
        "create": "POST /api/parroquias",
        "get": "GET /api/parroquias/:id",
    },
    "usuarios": {
        "list": "GET /api/usuarios",
        "create": "POST /api/usuarios",
        "toggleStatus": "PUT /api/usuarios/:id/toggle-status",
        "resetPassword": "PUT /api/usuarios/:id/reset-password",
        "unlock": "PUT /api/usuarios/:id/desbloquear",
        "clearExpiredLocks": "POST /api/usuarios/limpiar-bloqueos",
    },
}


@router.get("")
async def api_info(request: Request) -> JSONResponse:
    async def handler(principal: Principal | None) -> HandlerOutcome:
        return HandlerOutcome.ok(
            {
                "version": __version__,
                "timestamp": datetime.now(tz=UTC).isoformat(),
                "authenticated": principal is not None,
                "user": principal.public_dict() if principal is not None else None,
                "endpoints": ENDPOINTS,
            },
            message="Catequesis API",
        )

    return await guard_optional(request, policies.API_INFO, handler)
