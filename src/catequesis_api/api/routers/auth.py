"""
catequesis_api.api.routers.auth

Authentication endpoints.

Responsibilities:
- Login (public, login rate limiter, failed-attempt lockout, token issue).
- Profile read/update, change password, logout, refresh, verify.

Profile view, change password and logout stay reachable while a password change
is pending (see `api.policies`).
"""

from __future__ import annotations

import uuid
from datetime import timedelta

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN

from catequesis_api.api import policies
from catequesis_api.api.deps import db_session, settings_dep
from catequesis_api.api.gating import guard, guard_optional
from catequesis_api.auth.jwt import JwtConfig, issue_token
from catequesis_api.auth.models import Principal
from catequesis_api.auth.passwords import hash_password, verify_password
from catequesis_api.db.models import User, utcnow
from catequesis_api.db.repositories.users import UserRepo
from catequesis_api.gating.context import HandlerOutcome
from catequesis_api.observability.logging import get_logger
from catequesis_api.settings import Settings

log = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=1, max_length=100)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=100, alias="currentPassword")
    new_password: str = Field(min_length=6, max_length=100, alias="newPassword")


class UpdateProfileRequest(BaseModel):
    first_name: str | None = Field(default=None, min_length=2, max_length=100, alias="firstName")
    last_name: str | None = Field(default=None, min_length=2, max_length=100, alias="lastName")
    email: str | None = Field(default=None, max_length=150)


def _principal_of(user: User) -> Principal:
    return Principal(
        id=str(user.id),
        username=user.username,
        display_name=user.display_name,
        role=user.role,
        parish_id=str(user.parish_id) if user.parish_id is not None else None,
        active=user.active,
        must_change_password=user.must_change_password,
    )


def _token_payload(settings: Settings, principal: Principal) -> dict[str, object]:
    cfg = JwtConfig.from_settings(settings)
    token = issue_token(
        cfg=cfg,
        subject=principal.id,
        claims={"username": principal.username, "role": principal.role.value},
    )
    return {
        "token": token,
        "tokenType": "bearer",
        "expiresIn": int(cfg.ttl.total_seconds()),
        "user": principal.public_dict(),
    }


@router.post("/login")
async def login(
    request: Request,
    body: LoginRequest,
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> JSONResponse:
    async def handler(_: Principal | None) -> HandlerOutcome:
        users = UserRepo(session)
        user = await users.get_by_username(body.username)
        if user is None:
            return HandlerOutcome.fail("Invalid credentials", status_code=HTTP_401_UNAUTHORIZED)

        now = utcnow()
        if not user.active:
            return HandlerOutcome.fail(
                "User inactive. Contact the administrator", status_code=HTTP_403_FORBIDDEN
            )
        if not user.is_active_at(now):
            return HandlerOutcome.fail(
                "User temporarily blocked after repeated failed logins",
                status_code=HTTP_403_FORBIDDEN,
            )

        if not await run_in_threadpool(verify_password, body.password, user.password_hash):
            locked = await users.record_login_failure(
                user,
                max_attempts=settings.login_max_failed_attempts,
                lockout=timedelta(minutes=settings.login_lockout_minutes),
                now=now,
            )
            await session.commit()
            if locked:
                log.warning("account_locked", user_id=str(user.id), until=str(user.locked_until))
            return HandlerOutcome.fail("Invalid credentials", status_code=HTTP_401_UNAUTHORIZED)

        await users.record_login_success(user, now=now)
        await session.commit()
        principal = _principal_of(user)
        return HandlerOutcome.ok(
            _token_payload(settings, principal),
            message="Login successful",
            actor=principal,
        )

    return await guard_optional(request, policies.LOGIN, handler)


@router.get("/profile")
async def get_profile(request: Request) -> JSONResponse:
    async def handler(principal: Principal) -> HandlerOutcome:
        return HandlerOutcome.ok({"user": principal.public_dict()})

    return await guard(request, policies.GET_PROFILE, handler)


@router.put("/profile")
async def update_profile(
    request: Request,
    body: UpdateProfileRequest,
    session: AsyncSession = Depends(db_session),
) -> JSONResponse:
    async def handler(principal: Principal) -> HandlerOutcome:
        user = await UserRepo(session).get(uuid.UUID(principal.id))
        if user is None:
            return HandlerOutcome.fail("User not found", status_code=404)
        for name, value in body.model_dump(exclude_unset=True).items():
            setattr(user, name, value)
        await session.commit()
        return HandlerOutcome.ok(
            {"user": _principal_of(user).public_dict()}, message="Profile updated"
        )

    return await guard(request, policies.UPDATE_PROFILE, handler)


@router.put("/change-password")
async def change_password(
    request: Request,
    body: ChangePasswordRequest,
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(settings_dep),
) -> JSONResponse:
    async def handler(principal: Principal) -> HandlerOutcome:
        users = UserRepo(session)
        user = await users.get(uuid.UUID(principal.id))
        if user is None:
            return HandlerOutcome.fail("User not found", status_code=404)
        if not await run_in_threadpool(verify_password, body.current_password, user.password_hash):
            return HandlerOutcome.fail(
                "Current password is incorrect", status_code=HTTP_401_UNAUTHORIZED
            )
        if body.new_password == body.current_password:
            return HandlerOutcome.fail(
                "New password must differ from the current one",
                status_code=HTTP_400_BAD_REQUEST,
                field="newPassword",
            )
        new_hash = await run_in_threadpool(
            hash_password, body.new_password, rounds=settings.bcrypt_rounds
        )
        await users.set_password(user, password_hash=new_hash)
        await session.commit()
        return HandlerOutcome.ok(message="Password updated")

    return await guard(request, policies.CHANGE_PASSWORD, handler)


@router.post("/logout")
async def logout(request: Request) -> JSONResponse:
    async def handler(_: Principal) -> HandlerOutcome:
        # Tokens are stateless; the client discards its copy.
        return HandlerOutcome.ok(message="Logged out")

    return await guard(request, policies.LOGOUT, handler)


@router.post("/refresh")
async def refresh_token(
    request: Request,
    settings: Settings = Depends(settings_dep),
) -> JSONResponse:
    async def handler(principal: Principal) -> HandlerOutcome:
        return HandlerOutcome.ok(_token_payload(settings, principal), message="Token refreshed")

    return await guard(request, policies.REFRESH_TOKEN, handler)


@router.get("/verify")
async def verify_token(request: Request) -> JSONResponse:
    async def handler(principal: Principal) -> HandlerOutcome:
        return HandlerOutcome.ok({"valid": True, "user": principal.public_dict()})

    return await guard(request, policies.VERIFY_TOKEN, handler)


# --- Module Notes -----------------------------------------------------------
# Login never clears the must-change flag; only a completed password change does.
