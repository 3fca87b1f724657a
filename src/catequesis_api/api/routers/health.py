"""
catequesis_api.api.routers.health

Health and readiness endpoints (ungated).

Responsibilities:
- Provide liveness probe (`/healthz`).
- Provide readiness probe (`/readyz`) with DB connectivity validation.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from catequesis_api import __version__
from catequesis_api.api.deps import db_session, settings_dep
from catequesis_api.settings import Settings

router = APIRouter()


@router.get("/healthz")
async def healthz(settings: Settings = Depends(settings_dep)) -> dict[str, str]:
    return {"status": "ok", "version": __version__, "environment": settings.env}


@router.get("/readyz")
async def readyz(session: AsyncSession = Depends(db_session)) -> dict[str, str]:
    # Readiness: the user store backs every authenticated request.
    await session.execute(text("SELECT 1"))
    return {"status": "ready"}
