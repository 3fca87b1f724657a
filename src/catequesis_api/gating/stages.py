"""
catequesis_api.gating.stages

Individual gating stages.

Responsibilities:
- Credential Verifier: bearer token -> subject id.
- Principal Resolver: subject id -> Principal via the Principal Directory.
- Rate limit stage: per-identity sliding window admission.
- Role, Parish Scope and Credential-Change gates.

Every stage has the same shape: `async (GateContext) -> GateContext | Rejection`.
The pure checks behind the gates are exposed separately so they can be reused
and tested without a context.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace

from catequesis_api.auth.directory import DirectoryUnavailableError, PrincipalDirectory
from catequesis_api.auth.jwt import (
    JwtConfig,
    JwtExpiredError,
    JwtValidationError,
    decode_and_validate,
)
from catequesis_api.auth.models import Principal, Role
from catequesis_api.gating.context import GateContext
from catequesis_api.gating.policy import RoutePolicy
from catequesis_api.gating.ratelimit import SlidingWindowLimiter
from catequesis_api.gating.rejections import Rejection, RejectionKind
from catequesis_api.observability.logging import get_logger

log = get_logger(__name__)

Stage = Callable[[GateContext], Awaitable[GateContext | Rejection]]


def verify_credential(raw: str | None, cfg: JwtConfig) -> str | Rejection:
    if not raw:
        return Rejection.of(RejectionKind.missing_credential)
    try:
        payload = decode_and_validate(cfg=cfg, token=raw)
    except JwtExpiredError:
        return Rejection.of(RejectionKind.expired_credential)
    except JwtValidationError:
        return Rejection.of(RejectionKind.invalid_credential)

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        return Rejection.of(RejectionKind.invalid_credential, field="sub")
    return subject


class CredentialStage:
    def __init__(self, cfg: JwtConfig, *, optional: bool = False) -> None:
        self._cfg = cfg
        self._optional = optional

    async def __call__(self, ctx: GateContext) -> GateContext | Rejection:
        # Optional routes proceed anonymously only when no credential was sent at all.
        if self._optional and not ctx.credential:
            return ctx
        result = verify_credential(ctx.credential, self._cfg)
        if isinstance(result, Rejection):
            return result
        return replace(ctx, subject=result)


class PrincipalResolver:
    def __init__(self, directory: PrincipalDirectory) -> None:
        self._directory = directory

    async def resolve(self, subject: str) -> Principal | Rejection:
        try:
            entry = await self._directory.resolve(subject)
        except DirectoryUnavailableError as e:
            log.warning("directory_unavailable", error=str(e))
            return Rejection.of(RejectionKind.directory_unavailable)
        except Exception as e:
            # A misbehaving directory is still a lookup failure, never a 500.
            log.warning(
                "directory_lookup_failed", error_type=type(e).__name__, exc_info=True
            )
            return Rejection.of(RejectionKind.directory_unavailable)
        if entry is None:
            return Rejection.of(RejectionKind.unknown_principal)
        if not entry.active:
            return Rejection.of(RejectionKind.inactive_principal)
        return entry.to_principal()

    async def __call__(self, ctx: GateContext) -> GateContext | Rejection:
        if ctx.subject is None:
            return ctx
        result = await self.resolve(ctx.subject)
        if isinstance(result, Rejection):
            return result
        return replace(ctx, principal=result)


class RateLimitStage:
    def __init__(self, limiters: Mapping[str, SlidingWindowLimiter]) -> None:
        self._limiters = dict(limiters)

    def has_limiter(self, name: str) -> bool:
        return name in self._limiters

    async def __call__(self, ctx: GateContext) -> GateContext | Rejection:
        if ctx.policy.limiter is None:
            return ctx
        limiter = self._limiters[ctx.policy.limiter]
        decision = await limiter.check(ctx.rate_key)
        if not decision.admitted:
            return Rejection.of(RejectionKind.rate_limited, retry_after=decision.retry_after)
        return ctx


def check_role(principal: Principal | None, policy: RoutePolicy) -> Rejection | None:
    if not policy.allowed_roles:
        return None
    if principal is None:
        return Rejection.of(RejectionKind.missing_credential)
    if principal.role not in policy.allowed_roles:
        return Rejection.of(RejectionKind.insufficient_role, value=principal.role.value)
    return None


async def role_gate(ctx: GateContext) -> GateContext | Rejection:
    return check_role(ctx.principal, ctx.policy) or ctx


def check_parish(
    principal: Principal,
    resource_parish_id: str | None,
    *,
    privileged_role: Role,
) -> Rejection | None:
    if principal.role == privileged_role:
        return None
    if principal.parish_id is None:
        return Rejection.of(RejectionKind.no_tenant_assigned)
    if resource_parish_id is not None and str(resource_parish_id) != principal.parish_id:
        return Rejection.of(RejectionKind.tenant_mismatch, value=str(resource_parish_id))
    return None


class ParishScopeGate:
    def __init__(self, *, privileged_role: Role = Role.admin) -> None:
        self._privileged_role = privileged_role

    async def __call__(self, ctx: GateContext) -> GateContext | Rejection:
        if not ctx.policy.parish_scoped:
            return ctx
        principal = ctx.principal
        if principal is None:
            return Rejection.of(RejectionKind.missing_credential)

        # Decide everything that does not need the resource before fetching it.
        early = check_parish(principal, None, privileged_role=self._privileged_role)
        if early is not None:
            return early
        if principal.role == self._privileged_role or ctx.resource_parish is None:
            return ctx

        resource_parish_id = await ctx.resource_parish()
        if resource_parish_id is None:
            return Rejection.of(RejectionKind.resource_not_found)
        mismatch = check_parish(
            principal, resource_parish_id, privileged_role=self._privileged_role
        )
        return mismatch or ctx


def check_credential_change(principal: Principal | None, policy: RoutePolicy) -> Rejection | None:
    if principal is None or not principal.must_change_password:
        return None
    if policy.credential_change_exempt:
        return None
    return Rejection.of(RejectionKind.credential_change_required)


async def credential_change_gate(ctx: GateContext) -> GateContext | Rejection:
    return check_credential_change(ctx.principal, ctx.policy) or ctx


# --- Module Notes -----------------------------------------------------------
# The credential-change gate never clears the flag; see `UserRepo.set_password`.
