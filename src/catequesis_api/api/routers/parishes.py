"""
catequesis_api.api.routers.parishes

Parish endpoints.

Responsibilities:
- List parishes visible to the caller (admins: all; others: their own).
- Read one parish (parish-scoped: the gate fetches the target's parish first).
- Create parishes (admin / parroco).
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_404_NOT_FOUND, HTTP_409_CONFLICT

from catequesis_api.api import policies
from catequesis_api.api.deps import db_session
from catequesis_api.api.gating import guard
from catequesis_api.auth.models import Principal
from catequesis_api.db.models import Parish
from catequesis_api.db.repositories.parishes import ParishRepo
from catequesis_api.gating.context import HandlerOutcome

router = APIRouter(prefix="/api/parroquias", tags=["parroquias"])


class ParishCreateRequest(BaseModel):
    name: str = Field(min_length=3, max_length=150)
    address: str | None = Field(default=None, max_length=250)
    phone: str | None = Field(default=None, max_length=20)


def _parish_dict(parish: Parish) -> dict[str, object]:
    return {
        "id": str(parish.id),
        "name": parish.name,
        "address": parish.address,
        "phone": parish.phone,
        "active": parish.active,
        "createdAt": parish.created_at.isoformat(),
    }


@router.get("")
async def list_parishes(
    request: Request,
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    async def handler(principal: Principal) -> HandlerOutcome:
        # Admins bypass scoping; everyone else only ever sees their own parish.
        own = None if principal.parish_id is None else uuid.UUID(principal.parish_id)
        parishes = await ParishRepo(session).list_active(parish_id=own)
        return HandlerOutcome.ok([_parish_dict(p) for p in parishes])

    return await guard(request, policies.LIST_PARISHES, handler)


@router.get("/{parish_id}")
async def get_parish(
    request: Request,
    parish_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    repo = ParishRepo(session)

    async def resource_parish() -> str | None:
        parish = await repo.get(parish_id)
        return str(parish.id) if parish is not None else None

    async def handler(_: Principal) -> HandlerOutcome:
        parish = await repo.get(parish_id)
        if parish is None:
            return HandlerOutcome.fail("Parish not found", status_code=HTTP_404_NOT_FOUND)
        return HandlerOutcome.ok(_parish_dict(parish))

    return await guard(request, policies.GET_PARISH, handler, resource_parish=resource_parish)


@router.post("")
async def create_parish(
    request: Request,
    body: ParishCreateRequest,
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    async def handler(_: Principal) -> HandlerOutcome:
        repo = ParishRepo(session)
        if await repo.get_by_name(body.name) is not None:
            return HandlerOutcome.fail(
                "A parish with that name already exists",
                status_code=HTTP_409_CONFLICT,
                field="name",
            )
        parish = await repo.create(name=body.name, address=body.address, phone=body.phone)
        await session.commit()
        return HandlerOutcome.ok(
            _parish_dict(parish), message="Parish created", status_code=HTTP_201_CREATED
        )

    return await guard(request, policies.CREATE_PARISH, handler)
