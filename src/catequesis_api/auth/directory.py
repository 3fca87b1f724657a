"""
catequesis_api.auth.directory

Principal Directory contract and its SQL-backed implementation.

Responsibilities:
- Define the lookup interface the gating pipeline depends on.
- Resolve a user id into a `DirectoryEntry` (found / active / role / parish / flags).
- Translate storage failures into `DirectoryUnavailableError`.
"""

from __future__ import annotations

from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catequesis_api.auth.models import DirectoryEntry
from catequesis_api.db.models import utcnow
from catequesis_api.db.repositories.users import UserRepo, parse_id


class DirectoryUnavailableError(Exception):
    """The directory could not answer (storage down, connection dropped, ...)."""


class PrincipalDirectory(Protocol):
    async def resolve(self, principal_id: str) -> DirectoryEntry | None:
        """
        Return the entry for `principal_id`, or None when it does not exist.

        Implementations must raise `DirectoryUnavailableError` on lookup failure.
        """
        ...


class SqlPrincipalDirectory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def resolve(self, principal_id: str) -> DirectoryEntry | None:
        user_id = parse_id(principal_id)
        if user_id is None:
            return None
        try:
            async with self._session_factory() as session:
                user = await UserRepo(session).get(user_id)
        except (SQLAlchemyError, OSError) as e:
            raise DirectoryUnavailableError(str(e)) from e
        if user is None:
            return None
        return DirectoryEntry(
            id=str(user.id),
            username=user.username,
            display_name=user.display_name,
            role=user.role,
            parish_id=str(user.parish_id) if user.parish_id is not None else None,
            active=user.is_active_at(utcnow()),
            must_change_password=user.must_change_password,
            password_hash=user.password_hash,
        )


# --- Module Notes -----------------------------------------------------------
# No timeout is applied here; callers that need one wrap the whole admission.
# Any other exception escaping `resolve` is mapped to DirectoryUnavailable by
# `gating.stages.PrincipalResolver`.
