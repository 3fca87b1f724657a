"""
tests.conftest

Shared fixtures and fakes.

Responsibilities:
- In-memory Principal Directory and a manual clock for unit tests of the gating core.
- A fully started app (temporary SQLite DB) plus seeding helpers for API tests.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from datetime import timedelta
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from catequesis_api.api.app import create_app
from catequesis_api.auth.directory import DirectoryUnavailableError
from catequesis_api.auth.jwt import JwtConfig, issue_token
from catequesis_api.auth.models import DirectoryEntry, Role
from catequesis_api.auth.passwords import hash_password
from catequesis_api.db.models import Parish, User
from catequesis_api.db.repositories.parishes import ParishRepo
from catequesis_api.db.repositories.users import UserRepo
from catequesis_api.gating.pipeline import Pipeline
from catequesis_api.gating.policy import API_LIMITER, CREDENTIAL_CHANGE_LIMITER, LOGIN_LIMITER
from catequesis_api.gating.ratelimit import SlidingWindowLimiter
from catequesis_api.observability.activity import ActivityLogger, ActivityRecord
from catequesis_api.settings import Settings

PARISH_1 = "11111111-1111-1111-1111-111111111111"
PARISH_2 = "22222222-2222-2222-2222-222222222222"


class ManualClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDirectory:
    def __init__(self, *entries: DirectoryEntry, fail: bool = False) -> None:
        self.entries = {e.id: e for e in entries}
        self.fail = fail
        self.calls: list[str] = []

    async def resolve(self, principal_id: str) -> DirectoryEntry | None:
        self.calls.append(principal_id)
        if self.fail:
            raise DirectoryUnavailableError("directory down")
        return self.entries.get(principal_id)


def make_entry(
    role: Role = Role.catequista,
    *,
    parish_id: str | None = PARISH_1,
    active: bool = True,
    must_change_password: bool = False,
) -> DirectoryEntry:
    principal_id = str(uuid.uuid4())
    return DirectoryEntry(
        id=principal_id,
        username=f"{role.value}-{principal_id[:8]}",
        display_name=role.value.title(),
        role=role,
        parish_id=None if role is Role.admin else parish_id,
        active=active,
        must_change_password=must_change_password,
        password_hash="$2b$04$notarealhashnotarealhashnotarealhashnotarealhashnotre",
    )


@pytest.fixture
def jwt_cfg() -> JwtConfig:
    return JwtConfig(
        alg="HS256",
        issuer="catequesis-test",
        audience="catequesis-test-clients",
        secret="unit-test-secret-0123456789abcdef0123",
        ttl=timedelta(hours=1),
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def activity_records() -> list[ActivityRecord]:
    return []


@pytest.fixture
def activity(activity_records: list[ActivityRecord]) -> ActivityLogger:
    return ActivityLogger(max_pending=100, sink=activity_records.append)


@pytest.fixture
def make_pipeline(jwt_cfg: JwtConfig, clock: ManualClock, activity: ActivityLogger):
    def _make(directory: FakeDirectory, *, api_quota: int = 100) -> Pipeline:
        limiters = {
            API_LIMITER: SlidingWindowLimiter(quota=api_quota, window_seconds=900, clock=clock),
            LOGIN_LIMITER: SlidingWindowLimiter(quota=10, window_seconds=900, clock=clock),
            CREDENTIAL_CHANGE_LIMITER: SlidingWindowLimiter(
                quota=5, window_seconds=3600, clock=clock
            ),
        }
        return Pipeline(
            jwt_cfg=jwt_cfg,
            directory=directory,
            limiters=limiters,
            activity=activity,
            privileged_role=Role.admin,
        )

    return _make


# --- API fixtures -------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'catequesis-test.db'}",
        jwt_secret="api-test-secret-0123456789abcdef0123456",
        bcrypt_rounds=4,
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def app(settings: Settings) -> AsyncIterator[FastAPI]:
    app = create_app(settings=settings)
    # httpx ASGITransport does not run the lifespan; drive it explicitly.
    async with app.router.lifespan_context(app):
        yield app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def seed_parish(app: FastAPI, name: str) -> Parish:
    async with app.state.sessionmaker() as session:
        parish = await ParishRepo(session).create(name=name)
        await session.commit()
        return parish


async def seed_user(
    app: FastAPI,
    *,
    username: str,
    password: str = "secreto123",
    role: Role = Role.catequista,
    parish: Parish | None = None,
    must_change_password: bool = False,
    active: bool = True,
) -> User:
    async with app.state.sessionmaker() as session:
        user = await UserRepo(session).create(
            username=username,
            password_hash=hash_password(password, rounds=4),
            role=role,
            parish_id=parish.id if parish is not None else None,
            must_change_password=must_change_password,
            active=active,
        )
        await session.commit()
        return user


def token_for(app: FastAPI, subject: str | uuid.UUID, **kwargs) -> str:
    cfg = JwtConfig.from_settings(app.state.settings)
    return issue_token(cfg=cfg, subject=str(subject), **kwargs)


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
