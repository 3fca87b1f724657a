"""
catequesis_api.gating.context

Values flowing through the gating pipeline.

Responsibilities:
- `GateContext`: immutable per-request state each stage reads and (by copy) extends.
- `HandlerOutcome`: what a downstream handler reports back to the orchestrator.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from catequesis_api.auth.models import Principal
from catequesis_api.gating.policy import RoutePolicy

# Preliminary fetch of the target resource's parish id (None = resource does not exist).
ResourceParishLookup = Callable[[], Awaitable[str | None]]


@dataclass(frozen=True, slots=True)
class GateContext:
    policy: RoutePolicy
    path: str
    method: str
    credential: str | None
    origin: str = "unknown"
    resource_parish: ResourceParishLookup | None = None
    subject: str | None = None
    principal: Principal | None = None

    @property
    def rate_key(self) -> str:
        # Authenticated callers are limited per identity; anonymous ones per network origin.
        if self.principal is not None:
            return self.principal.id
        return f"anon:{self.origin}"


@dataclass(frozen=True, slots=True)
class HandlerOutcome:
    success: bool
    body: dict[str, Any] = field(default_factory=dict)
    status_code: int = 200
    # Identity to attribute activity to when the request itself was anonymous (login).
    actor: Principal | None = None

    @classmethod
    def ok(
        cls,
        data: Any = None,
        *,
        message: str | None = None,
        status_code: int = 200,
        actor: Principal | None = None,
    ) -> HandlerOutcome:
        body: dict[str, Any] = {"success": True}
        if message is not None:
            body["message"] = message
        if data is not None:
            body["data"] = data
        return cls(success=True, body=body, status_code=status_code, actor=actor)

    @classmethod
    def fail(cls, message: str, *, status_code: int, **fields: Any) -> HandlerOutcome:
        body: dict[str, Any] = {
            "success": False,
            "message": message,
            "timestamp": datetime.now(tz=UTC).isoformat(),
            **fields,
        }
        return cls(success=False, body=body, status_code=status_code)


# Required-auth handlers always receive the admitted Principal; optional and public
# routes may be served anonymously.
Handler = Callable[[Principal], Awaitable[HandlerOutcome]]
OptionalHandler = Callable[[Principal | None], Awaitable[HandlerOutcome]]
