"""
catequesis_api.gating.policy

Static per-endpoint gating configuration.

Responsibilities:
- Describe what a route requires (`RoutePolicy`).
- Hold the immutable set of policies registered at startup (`RoutePolicyRegistry`).
- Derive the credential-change allow-list from the same policies the Role Gate reads.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from catequesis_api.auth.models import Role

API_LIMITER = "api"
LOGIN_LIMITER = "login"
CREDENTIAL_CHANGE_LIMITER = "credential_change"


@dataclass(frozen=True, slots=True)
class RoutePolicy:
    # `action` doubles as the activity log tag (e.g. "LOGIN", "GET_PROFILE").
    action: str
    allowed_roles: frozenset[Role] = field(default_factory=frozenset)
    parish_scoped: bool = False
    credential_change_exempt: bool = False
    limiter: str | None = API_LIMITER
    # Public routes skip authentication entirely; only the limiter applies.
    public: bool = False

    @classmethod
    def for_roles(cls, action: str, *roles: Role, **kwargs) -> RoutePolicy:
        return cls(action=action, allowed_roles=frozenset(roles), **kwargs)


class RoutePolicyRegistry(Mapping[str, RoutePolicy]):
    """
    Read-only action -> policy table.

    Duplicate actions are a configuration error: two routes sharing a tag would
    make activity records ambiguous.
    """

    def __init__(self, policies: Iterable[RoutePolicy]) -> None:
        table: dict[str, RoutePolicy] = {}
        for policy in policies:
            if policy.action in table:
                raise ValueError(f"duplicate route policy: {policy.action}")
            table[policy.action] = policy
        self._table = MappingProxyType(table)

    def __getitem__(self, action: str) -> RoutePolicy:
        return self._table[action]

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def credential_change_allow_list(self) -> frozenset[str]:
        return frozenset(a for a, p in self._table.items() if p.credential_change_exempt)


# --- Module Notes -----------------------------------------------------------
# The concrete table for this service lives in `api.policies`.
