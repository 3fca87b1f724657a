from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catequesis_api.db.models import Parish


class ParishRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        name: str,
        address: str | None = None,
        phone: str | None = None,
    ) -> Parish:
        parish = Parish(name=name.strip(), address=address, phone=phone, active=True)
        self._session.add(parish)
        await self._session.flush()
        return parish

    async def get(self, parish_id: uuid.UUID) -> Parish | None:
        return await self._session.get(Parish, parish_id)

    async def get_by_name(self, name: str) -> Parish | None:
        stmt = select(Parish).where(Parish.name == name.strip())
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def list_active(self, *, parish_id: uuid.UUID | None = None) -> list[Parish]:
        stmt = select(Parish).where(Parish.active.is_(True)).order_by(Parish.name)
        if parish_id is not None:
            stmt = stmt.where(Parish.id == parish_id)
        return list((await self._session.execute(stmt)).scalars().all())
