"""
tests.test_directory

SQL-backed Principal Directory.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
import pytest_asyncio

from catequesis_api.auth.directory import DirectoryUnavailableError, SqlPrincipalDirectory
from catequesis_api.auth.models import Role
from catequesis_api.db.init_db import init_db
from catequesis_api.db.models import utcnow
from catequesis_api.db.repositories.parishes import ParishRepo
from catequesis_api.db.repositories.users import UserRepo
from catequesis_api.db.session import create_engine, create_sessionmaker
from catequesis_api.settings import Settings


@pytest_asyncio.fixture
async def sessionmaker(settings: Settings):
    engine = create_engine(settings)
    await init_db(engine)
    try:
        yield create_sessionmaker(engine)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_resolves_entry_with_parish_and_flags(sessionmaker) -> None:
    async with sessionmaker() as session:
        parish = await ParishRepo(session).create(name="San José")
        user = await UserRepo(session).create(
            username="Maria",
            password_hash="hash",
            role=Role.catequista,
            parish_id=parish.id,
            first_name="María",
            last_name="López",
        )
        await session.commit()

    entry = await SqlPrincipalDirectory(sessionmaker).resolve(str(user.id))

    assert entry is not None
    assert entry.username == "maria"
    assert entry.display_name == "María López"
    assert entry.role is Role.catequista
    assert entry.parish_id == str(parish.id)
    assert entry.active
    assert entry.must_change_password


@pytest.mark.asyncio
async def test_unknown_or_malformed_ids_resolve_to_none(sessionmaker) -> None:
    directory = SqlPrincipalDirectory(sessionmaker)
    assert await directory.resolve(str(uuid.uuid4())) is None
    assert await directory.resolve("not-a-uuid") is None


@pytest.mark.asyncio
async def test_temporary_lock_reads_as_inactive(sessionmaker) -> None:
    async with sessionmaker() as session:
        repo = UserRepo(session)
        user = await repo.create(username="pedro", password_hash="hash", role=Role.secretaria)
        locked = await repo.record_login_failure(
            user, max_attempts=1, lockout=timedelta(minutes=30), now=utcnow()
        )
        await session.commit()
    assert locked

    entry = await SqlPrincipalDirectory(sessionmaker).resolve(str(user.id))
    assert entry is not None
    assert not entry.active


@pytest.mark.asyncio
async def test_storage_failure_raises_unavailable(tmp_path) -> None:
    settings = Settings(
        env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'missing-dir' / 'nope.db'}",
    )
    engine = create_engine(settings)
    try:
        directory = SqlPrincipalDirectory(create_sessionmaker(engine))
        with pytest.raises(DirectoryUnavailableError):
            await directory.resolve(str(uuid.uuid4()))
    finally:
        await engine.dispose()
