"""
catequesis_api.api.routers.users

User administration endpoints.

Responsibilities:
- List users (admins: all; parroco / secretaria: their own parish).
- Create users (admin anywhere; parroco only non-privileged roles in their parish).
- Drive the account states the gating pipeline reads: activate / deactivate,
  administrative password reset (sets the must-change flag), unlock, and the
  bulk cleanup of expired lockouts.

Target-user routes are parish-scoped: the gate loads the target user's parish
before the handler runs.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool
from starlette.status import (
    HTTP_201_CREATED,
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)

from catequesis_api.api import policies
from catequesis_api.api.deps import db_session, settings_dep
from catequesis_api.api.gating import guard
from catequesis_api.auth.models import Principal, Role
from catequesis_api.auth.passwords import hash_password
from catequesis_api.db.models import User, utcnow
from catequesis_api.db.repositories.parishes import ParishRepo
from catequesis_api.db.repositories.users import UserRepo
from catequesis_api.gating.context import HandlerOutcome, ResourceParishLookup
from catequesis_api.observability.logging import get_logger
from catequesis_api.settings import Settings

log = get_logger(__name__)

router = APIRouter(prefix="/api/usuarios", tags=["usuarios"])

# Parish id reported for target users without a parish (admins); never equals a real one.
UNASSIGNED_PARISH = "unassigned"


class UserCreateRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6, max_length=100)
    role: Role
    parish_id: uuid.UUID | None = Field(default=None, alias="parishId")
    first_name: str | None = Field(default=None, min_length=2, max_length=100, alias="firstName")
    last_name: str | None = Field(default=None, min_length=2, max_length=100, alias="lastName")


class ToggleStatusRequest(BaseModel):
    active: bool


class ResetPasswordRequest(BaseModel):
    new_password: str = Field(min_length=6, max_length=100, alias="newPassword")


def _user_dict(user: User) -> dict[str, object]:
    return {
        "id": str(user.id),
        "username": user.username,
        "displayName": user.display_name,
        "role": user.role.value,
        "parishId": str(user.parish_id) if user.parish_id is not None else None,
        "active": user.active,
        "mustChangePassword": user.must_change_password,
        "lockedUntil": user.locked_until.isoformat() if user.locked_until else None,
    }


def _target_parish(repo: UserRepo, user_id: uuid.UUID) -> ResourceParishLookup:
    async def lookup() -> str | None:
        user = await repo.get(user_id)
        if user is None:
            return None
        return str(user.parish_id) if user.parish_id is not None else UNASSIGNED_PARISH

    return lookup


def _not_found() -> HandlerOutcome:
    return HandlerOutcome.fail("User not found", status_code=HTTP_404_NOT_FOUND)


@router.get("")
async def list_users(
    request: Request,
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    async def handler(principal: Principal) -> HandlerOutcome:
        own = None if principal.parish_id is None else uuid.UUID(principal.parish_id)
        users = await UserRepo(session).list_all(parish_id=own)
        return HandlerOutcome.ok([_user_dict(u) for u in users])

    return await guard(request, policies.LIST_USERS, handler)


@router.post("")
async def create_user(
    request: Request,
    body: UserCreateRequest,
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> JSONResponse:
    async def handler(principal: Principal) -> HandlerOutcome:
        users = UserRepo(session)
        parish_id = body.parish_id
        if principal.role != Role.admin:
            if body.role in (Role.admin, Role.parroco):
                return HandlerOutcome.fail(
                    "You cannot create users with that role",
                    status_code=HTTP_403_FORBIDDEN,
                    field="role",
                )
            parish_id = uuid.UUID(principal.parish_id) if principal.parish_id else None

        if body.role == Role.admin:
            parish_id = None
        elif parish_id is None:
            return HandlerOutcome.fail(
                "A parish is required for this role",
                status_code=HTTP_400_BAD_REQUEST,
                field="parishId",
            )
        elif await ParishRepo(session).get(parish_id) is None:
            return HandlerOutcome.fail(
                "Parish not found", status_code=HTTP_404_NOT_FOUND, field="parishId"
            )

        if await users.get_by_username(body.username) is not None:
            return HandlerOutcome.fail(
                "A user with that username already exists",
                status_code=HTTP_409_CONFLICT,
                field="username",
            )

        password_hash = await run_in_threadpool(
            hash_password, body.password, rounds=settings.bcrypt_rounds
        )
        user = await users.create(
            username=body.username,
            password_hash=password_hash,
            role=body.role,
            parish_id=parish_id,
            first_name=body.first_name,
            last_name=body.last_name,
            must_change_password=True,
        )
        await session.commit()
        return HandlerOutcome.ok(
            _user_dict(user), message="User created", status_code=HTTP_201_CREATED
        )

    return await guard(request, policies.CREATE_USER, handler)


@router.post("/limpiar-bloqueos")
async def clear_expired_locks(
    request: Request,
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    async def handler(_: Principal) -> HandlerOutcome:
        cleared = await UserRepo(session).clear_expired_locks(now=utcnow())
        await session.commit()
        return HandlerOutcome.ok(
            {"unlocked": cleared}, message=f"{cleared} users unlocked"
        )

    return await guard(request, policies.CLEAR_EXPIRED_LOCKS, handler)


@router.put("/{user_id}/toggle-status")
async def toggle_status(
    request: Request,
    user_id: uuid.UUID,
    body: ToggleStatusRequest,
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    repo = UserRepo(session)

    async def handler(principal: Principal) -> HandlerOutcome:
        user = await repo.get(user_id)
        if user is None:
            return _not_found()
        if principal.id == str(user.id) and not body.active:
            return HandlerOutcome.fail(
                "You cannot deactivate your own user", status_code=HTTP_400_BAD_REQUEST
            )
        await repo.set_active(user, active=body.active)
        await session.commit()
        log.info("user_status_changed", target_id=str(user.id), active=body.active)
        return HandlerOutcome.ok(
            _user_dict(user),
            message="User activated" if body.active else "User deactivated",
        )

    return await guard(
        request,
        policies.TOGGLE_USER_STATUS,
        handler,
        resource_parish=_target_parish(repo, user_id),
    )


@router.put("/{user_id}/reset-password")
async def reset_password(
    request: Request,
    user_id: uuid.UUID,
    body: ResetPasswordRequest,
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> JSONResponse:
    repo = UserRepo(session)

    async def handler(_: Principal) -> HandlerOutcome:
        user = await repo.get(user_id)
        if user is None:
            return _not_found()
        password_hash = await run_in_threadpool(
            hash_password, body.new_password, rounds=settings.bcrypt_rounds
        )
        await repo.reset_password(user, password_hash=password_hash)
        await session.commit()
        return HandlerOutcome.ok(_user_dict(user), message="Password reset")

    return await guard(
        request,
        policies.RESET_USER_PASSWORD,
        handler,
        resource_parish=_target_parish(repo, user_id),
    )


@router.put("/{user_id}/desbloquear")
async def unlock_user(
    request: Request,
    user_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    repo = UserRepo(session)

    async def handler(_: Principal) -> HandlerOutcome:
        user = await repo.get(user_id)
        if user is None:
            return _not_found()
        await repo.unlock(user)
        await session.commit()
        return HandlerOutcome.ok(_user_dict(user), message="User unlocked")

    return await guard(
        request,
        policies.UNLOCK_USER,
        handler,
        resource_parish=_target_parish(repo, user_id),
    )


# --- Module Notes -----------------------------------------------------------
# Deactivation and lockout take effect on the target's next request: the Principal
# Directory re-reads the account on every admission.
