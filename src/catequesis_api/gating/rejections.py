"""
catequesis_api.gating.rejections

Typed terminal outcomes of gating stages.

Responsibilities:
- Enumerate rejection kinds and their fixed HTTP status mapping.
- Carry the context a boundary needs to render a response (field, value, retry-after).
- Provide the exception used to surface a Rejection through FastAPI.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Any

from starlette.status import (
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_429_TOO_MANY_REQUESTS,
    HTTP_503_SERVICE_UNAVAILABLE,
)


class RejectionKind(enum.StrEnum):
    missing_credential = "MissingCredential"
    invalid_credential = "InvalidCredential"
    expired_credential = "ExpiredCredential"
    unknown_principal = "UnknownPrincipal"
    inactive_principal = "InactivePrincipal"
    directory_unavailable = "DirectoryUnavailable"
    rate_limited = "RateLimited"
    insufficient_role = "InsufficientRole"
    tenant_mismatch = "TenantMismatch"
    no_tenant_assigned = "NoTenantAssigned"
    credential_change_required = "CredentialChangeRequired"
    resource_not_found = "ResourceNotFound"


_STATUS: dict[RejectionKind, int] = {
    RejectionKind.missing_credential: HTTP_401_UNAUTHORIZED,
    RejectionKind.invalid_credential: HTTP_401_UNAUTHORIZED,
    RejectionKind.expired_credential: HTTP_401_UNAUTHORIZED,
    RejectionKind.unknown_principal: HTTP_401_UNAUTHORIZED,
    RejectionKind.inactive_principal: HTTP_401_UNAUTHORIZED,
    RejectionKind.insufficient_role: HTTP_403_FORBIDDEN,
    RejectionKind.tenant_mismatch: HTTP_403_FORBIDDEN,
    RejectionKind.no_tenant_assigned: HTTP_403_FORBIDDEN,
    RejectionKind.credential_change_required: HTTP_403_FORBIDDEN,
    RejectionKind.resource_not_found: HTTP_404_NOT_FOUND,
    RejectionKind.rate_limited: HTTP_429_TOO_MANY_REQUESTS,
    RejectionKind.directory_unavailable: HTTP_503_SERVICE_UNAVAILABLE,
}

_DEFAULT_MESSAGES: dict[RejectionKind, str] = {
    RejectionKind.missing_credential: "Access token required",
    RejectionKind.invalid_credential: "Invalid token",
    RejectionKind.expired_credential: "Token expired",
    RejectionKind.unknown_principal: "Invalid token - user not found",
    RejectionKind.inactive_principal: "User inactive or blocked",
    RejectionKind.directory_unavailable: "Identity service temporarily unavailable",
    RejectionKind.rate_limited: "Too many requests. Try again later.",
    RejectionKind.insufficient_role: "You do not have permission to access this resource",
    RejectionKind.tenant_mismatch: "You do not have access to resources of this parish",
    RejectionKind.no_tenant_assigned: "User has no parish assigned",
    RejectionKind.credential_change_required: "You must change your password before continuing",
    RejectionKind.resource_not_found: "Resource not found",
}


@dataclass(frozen=True, slots=True)
class Rejection:
    kind: RejectionKind
    message: str
    field: str | None = None
    value: Any = None
    retry_after: float | None = None

    @classmethod
    def of(cls, kind: RejectionKind, **context: Any) -> Rejection:
        message = context.pop("message", None) or _DEFAULT_MESSAGES[kind]
        return cls(kind=kind, message=message, **context)

    @property
    def status_code(self) -> int:
        return _STATUS[self.kind]

    @property
    def retry_after_seconds(self) -> int | None:
        # Retry-After is an integer header; never advertise 0 while still limited.
        if self.retry_after is None:
            return None
        return max(1, math.ceil(self.retry_after))

    def details(self) -> dict[str, Any]:
        """Kind-specific envelope fields."""

        out: dict[str, Any] = {"code": self.kind.value}
        if self.field is not None:
            out["field"] = self.field
        if self.value is not None:
            out["value"] = self.value
        if self.kind is RejectionKind.rate_limited:
            out["retryAfter"] = self.retry_after_seconds
        if self.kind is RejectionKind.credential_change_required:
            out["requirePasswordChange"] = True
        return out


class GateRejected(Exception):
    """Raised at the HTTP boundary so the exception handler can render the envelope."""

    def __init__(self, rejection: Rejection) -> None:
        super().__init__(rejection.message)
        self.rejection = rejection


# --- Module Notes -----------------------------------------------------------
# Stages return Rejection values; only `api.gating` turns them into GateRejected.
