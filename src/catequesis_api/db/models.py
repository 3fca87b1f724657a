"""
catequesis_api.db.models

Persistence schema for identities and tenants.

Responsibilities:
- Define ORM models used by authentication and parish scoping:
  - Parish: tenant boundary of the catechesis program
  - User: staff account with a profile role and (except admins) a parish
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, Enum, ForeignKey, Index, String, Uuid as SAUuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from catequesis_api.auth.models import Role
from catequesis_api.db.base import Base


def utcnow() -> datetime:
    # Naive UTC timestamps; SQLite has no tz-aware column type.
    return datetime.now(tz=UTC).replace(tzinfo=None)


class Parish(Base):
    __tablename__ = "parishes"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(150), nullable=False, unique=True)
    address: Mapped[str | None] = mapped_column(String(250), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    users: Mapped[list[User]] = relationship(back_populates="parish")


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)

    role: Mapped[Role] = mapped_column(Enum(Role), nullable=False, default=Role.consulta)
    # Admins have no parish; every other role must have one (enforced at the service layer).
    parish_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("parishes.id"), nullable=True
    )

    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(150), nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    must_change_password: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    failed_login_attempts: Mapped[int] = mapped_column(nullable=False, default=0)
    locked_until: Mapped[datetime | None] = mapped_column(nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)

    parish: Mapped[Parish | None] = relationship(back_populates="users")

    __table_args__ = (
        Index("ix_users_parish", "parish_id"),
        Index("ix_users_role", "role"),
    )

    @property
    def display_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.username

    def is_active_at(self, now: datetime) -> bool:
        return self.active and (self.locked_until is None or self.locked_until <= now)


# --- Module Notes -----------------------------------------------------------
# `password_hash` stays inside this layer and `auth.directory`; the gating core only
# ever sees `auth.models.Principal`, which has no field for it.
