"""
catequesis_api.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Expose the settings the app was created with.
- Provide request-scoped DB sessions from the app's sessionmaker.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catequesis_api.settings import Settings


def settings_dep(request: Request) -> Settings:
    # Tests build apps with explicit settings, so read them from app.state, not the env cache.
    return request.app.state.settings  # type: ignore[attr-defined]


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    # The sessionmaker is created in the lifespan of `catequesis_api.api.app.create_app`.
    return request.app.state.sessionmaker  # type: ignore[attr-defined]


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    # Request-scoped DB session. Handlers commit explicitly.
    async with session_factory() as session:
        yield session
