"""
catequesis_api.db.repositories.users

Repository for `User` entities.

Responsibilities:
- Look users up by id / username.
- Record login outcomes (failed-attempt counter, temporary lockout).
- Update stored credentials and clear the must-change flag.
- Administrative transitions: list, (de)activate, reset password, unlock.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from catequesis_api.auth.models import Role
from catequesis_api.db.models import User, utcnow


def parse_id(raw: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(raw)
    except (TypeError, ValueError):
        return None


class UserRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        username: str,
        password_hash: str,
        role: Role,
        parish_id: uuid.UUID | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        must_change_password: bool = True,
        active: bool = True,
    ) -> User:
        user = User(
            username=username.strip().lower(),
            password_hash=password_hash,
            role=role,
            parish_id=parish_id,
            first_name=first_name,
            last_name=last_name,
            must_change_password=must_change_password,
            active=active,
            failed_login_attempts=0,
        )
        self._session.add(user)
        await self._session.flush()
        return user

    async def get(self, user_id: uuid.UUID) -> User | None:
        return await self._session.get(User, user_id)

    async def get_by_username(self, username: str) -> User | None:
        stmt = select(User).where(func.lower(User.username) == username.strip().lower())
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def record_login_success(self, user: User, *, now: datetime | None = None) -> None:
        user.last_login_at = now or utcnow()
        user.failed_login_attempts = 0
        user.locked_until = None

    async def record_login_failure(
        self,
        user: User,
        *,
        max_attempts: int,
        lockout: timedelta,
        now: datetime | None = None,
    ) -> bool:
        """
        Bump the failed-attempt counter; lock the account once it reaches `max_attempts`.

        Returns True when this failure triggered a lockout.
        """

        user.failed_login_attempts += 1
        if user.failed_login_attempts >= max_attempts:
            user.locked_until = (now or utcnow()) + lockout
            user.failed_login_attempts = 0
            return True
        return False

    async def set_password(self, user: User, *, password_hash: str) -> None:
        user.password_hash = password_hash
        # Completing a credential change is the only transition back to the normal state.
        user.must_change_password = False

    async def list_all(self, *, parish_id: uuid.UUID | None = None) -> list[User]:
        stmt = select(User).order_by(User.username)
        if parish_id is not None:
            stmt = stmt.where(User.parish_id == parish_id)
        return list((await self._session.execute(stmt)).scalars().all())

    async def set_active(self, user: User, *, active: bool) -> None:
        user.active = active

    async def reset_password(self, user: User, *, password_hash: str) -> None:
        """Administrative reset: the user must pick a new password on next use."""

        user.password_hash = password_hash
        user.must_change_password = True
        await self.unlock(user)

    async def unlock(self, user: User) -> None:
        user.failed_login_attempts = 0
        user.locked_until = None

    async def clear_expired_locks(self, *, now: datetime | None = None) -> int:
        stmt = (
            update(User)
            .where(User.locked_until.is_not(None), User.locked_until < (now or utcnow()))
            .values(locked_until=None, failed_login_attempts=0)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0
