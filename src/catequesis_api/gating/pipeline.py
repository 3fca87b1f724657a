"""
catequesis_api.gating.pipeline

Pipeline Orchestrator for request gating.

Responsibilities:
- Compose the stages into an explicit ordered chain (verify -> resolve -> limit ->
  role -> parish -> credential change) and fold a `GateContext` through it.
- Short-circuit on the first `Rejection`; never reclassify it.
- Invoke the downstream handler on admission and record activity on success.
- Offer distinct optional-auth (missing credential -> anonymous) and public
  (credential ignored, rate limit only) entry points.
"""

from __future__ import annotations

from collections.abc import Awaitable, Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime

from catequesis_api.auth.directory import PrincipalDirectory
from catequesis_api.auth.jwt import JwtConfig
from catequesis_api.auth.models import Role
from catequesis_api.gating.context import GateContext, Handler, HandlerOutcome, OptionalHandler
from catequesis_api.gating.policy import RoutePolicy
from catequesis_api.gating.ratelimit import SlidingWindowLimiter
from catequesis_api.gating.rejections import Rejection
from catequesis_api.gating.stages import (
    CredentialStage,
    ParishScopeGate,
    PrincipalResolver,
    RateLimitStage,
    Stage,
    credential_change_gate,
    role_gate,
)
from catequesis_api.observability.activity import ActivityLogger, ActivityRecord
from catequesis_api.observability.logging import get_logger

log = get_logger(__name__)


async def fold(stages: Sequence[Stage], ctx: GateContext) -> GateContext | Rejection:
    for stage in stages:
        result = await stage(ctx)
        if isinstance(result, Rejection):
            return result
        ctx = result
    return ctx


class Pipeline:
    def __init__(
        self,
        *,
        jwt_cfg: JwtConfig,
        directory: PrincipalDirectory,
        limiters: Mapping[str, SlidingWindowLimiter],
        activity: ActivityLogger,
        privileged_role: Role = Role.admin,
    ) -> None:
        self._activity = activity
        self._rate_limit = RateLimitStage(limiters)
        resolver = PrincipalResolver(directory)
        gates: tuple[Stage, ...] = (
            self._rate_limit,
            role_gate,
            ParishScopeGate(privileged_role=privileged_role),
            credential_change_gate,
        )
        self.stages: tuple[Stage, ...] = (CredentialStage(jwt_cfg), resolver, *gates)
        self.optional_stages: tuple[Stage, ...] = (
            CredentialStage(jwt_cfg, optional=True),
            resolver,
            *gates,
        )
        # Public routes (login) are only throttled, per network origin.
        self.public_stages: tuple[Stage, ...] = (self._rate_limit,)

    def check_policies(self, policies: Iterable[RoutePolicy]) -> None:
        """Fail fast at startup if a policy names a limiter that is not configured."""

        for policy in policies:
            if policy.limiter is not None and not self._rate_limit.has_limiter(policy.limiter):
                raise ValueError(f"policy {policy.action} uses unknown limiter {policy.limiter}")

    async def admit(self, ctx: GateContext) -> GateContext | Rejection:
        return await self._admit(self.stages, ctx)

    async def admit_optional(self, ctx: GateContext) -> GateContext | Rejection:
        return await self._admit(self.optional_stages, ctx)

    async def admit_public(self, ctx: GateContext) -> GateContext | Rejection:
        return await self._admit(self.public_stages, ctx)

    async def run(self, ctx: GateContext, handler: Handler) -> HandlerOutcome | Rejection:
        admitted = await self.admit(ctx)
        if isinstance(admitted, Rejection):
            return admitted
        principal = admitted.principal
        if principal is None:
            raise RuntimeError(f"{ctx.policy.action} admitted without a principal")
        return await self._serve(admitted, handler(principal))

    async def run_optional(
        self, ctx: GateContext, handler: OptionalHandler
    ) -> HandlerOutcome | Rejection:
        admitted = await self.admit_optional(ctx)
        if isinstance(admitted, Rejection):
            return admitted
        return await self._serve(admitted, handler(admitted.principal))

    async def run_public(
        self, ctx: GateContext, handler: OptionalHandler
    ) -> HandlerOutcome | Rejection:
        """Serve an unauthenticated route; any credential sent along is ignored."""

        admitted = await self.admit_public(replace(ctx, credential=None))
        if isinstance(admitted, Rejection):
            return admitted
        return await self._serve(admitted, handler(None))

    async def _admit(self, stages: Sequence[Stage], ctx: GateContext) -> GateContext | Rejection:
        result = await fold(stages, ctx)
        if isinstance(result, Rejection):
            log.info(
                "request_rejected",
                kind=result.kind.value,
                action=ctx.policy.action,
                status_code=result.status_code,
            )
        return result

    async def _serve(
        self, admitted: GateContext, pending: Awaitable[HandlerOutcome]
    ) -> HandlerOutcome:
        outcome = await pending
        if outcome.success:
            self._record(admitted, outcome)
        return outcome

    def _record(self, ctx: GateContext, outcome: HandlerOutcome) -> None:
        actor = outcome.actor or ctx.principal
        if actor is None:
            return
        self._activity.emit(
            ActivityRecord(
                principal_id=actor.id,
                username=actor.username,
                role=actor.role.value,
                action=ctx.policy.action,
                method=ctx.method,
                path=ctx.path,
                timestamp=datetime.now(tz=UTC),
            )
        )


# --- Module Notes -----------------------------------------------------------
# Handler exceptions propagate untouched to the API error handlers; only a returned
# successful outcome produces an activity record.
