"""
catequesis_api.auth.models

Auth domain models.

Responsibilities:
- Define the profile roles of the catechesis program (`Role`).
- Define the resolved identity (`Principal`) attached to a gated request.
- Define the directory entry shape the Principal Directory hands back.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class Role(enum.StrEnum):
    # Values are persisted and embedded in route policies; treat as stable API contract.
    admin = "admin"
    parroco = "parroco"
    secretaria = "secretaria"
    catequista = "catequista"
    consulta = "consulta"


@dataclass(frozen=True, slots=True)
class Principal:
    """
    Resolved caller identity, valid for a single request.

    Has no credential hash field: anything built from a
    directory entry can only carry what is declared here.
    """

    id: str
    username: str
    display_name: str
    role: Role
    parish_id: str | None
    active: bool = True
    must_change_password: bool = False

    def public_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "username": self.username,
            "displayName": self.display_name,
            "role": self.role.value,
            "parishId": self.parish_id,
            "mustChangePassword": self.must_change_password,
        }


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    """
    Raw record returned by a Principal Directory. `active` already folds in
    temporary lockouts.

    May hold secret material (`password_hash`); it never leaves the resolver.
    """

    id: str
    username: str
    display_name: str
    role: Role
    parish_id: str | None
    active: bool
    must_change_password: bool
    password_hash: str | None = None

    def to_principal(self) -> Principal:
        return Principal(
            id=self.id,
            username=self.username,
            display_name=self.display_name,
            role=self.role,
            parish_id=self.parish_id,
            active=self.active,
            must_change_password=self.must_change_password,
        )


# --- Module Notes -----------------------------------------------------------
# Principal is frozen so no gate or handler can mutate identity mid-request.
