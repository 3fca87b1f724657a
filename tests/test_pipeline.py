"""
tests.test_pipeline

End-to-end behavior of the gating pipeline without HTTP.

Responsibilities:
- Stage ordering and short-circuiting.
- Activity recording only on successful handler outcomes.
- Required, optional-auth and public entry points.
"""

from __future__ import annotations

import asyncio
import dataclasses
from datetime import UTC, datetime, timedelta

import pytest

from catequesis_api.api import policies
from catequesis_api.auth.jwt import issue_token
from catequesis_api.auth.models import Principal, Role
from catequesis_api.gating.context import GateContext, HandlerOutcome
from catequesis_api.gating.policy import RoutePolicy
from catequesis_api.gating.rejections import Rejection, RejectionKind

from .conftest import PARISH_1, PARISH_2, FakeDirectory, make_entry


class RecordingHandler:
    def __init__(self, outcome: HandlerOutcome | None = None) -> None:
        self.calls: list[Principal | None] = []
        self._outcome = outcome or HandlerOutcome.ok({"done": True})

    async def __call__(self, principal: Principal | None) -> HandlerOutcome:
        self.calls.append(principal)
        return self._outcome


def _lookup(parish_id):
    async def lookup() -> str | None:
        return parish_id

    return lookup


def _ctx(policy: RoutePolicy, credential: str | None, *, lookup=None) -> GateContext:
    return GateContext(
        policy=policy,
        path="/api/parroquias/x",
        method="GET",
        credential=credential,
        origin="10.0.0.7",
        resource_parish=lookup,
    )


@pytest.mark.asyncio
async def test_catequista_reads_own_parish(make_pipeline, jwt_cfg, activity, activity_records):
    entry = make_entry(Role.catequista, parish_id=PARISH_1)
    pipeline = make_pipeline(FakeDirectory(entry))
    handler = RecordingHandler()
    token = issue_token(cfg=jwt_cfg, subject=entry.id)

    outcome = await pipeline.run(
        _ctx(policies.GET_PARISH, token, lookup=_lookup(PARISH_1)), handler
    )

    assert isinstance(outcome, HandlerOutcome) and outcome.success
    assert len(handler.calls) == 1
    assert handler.calls[0] == entry.to_principal()
    assert activity.drain() == 1
    [record] = activity_records
    assert record.principal_id == entry.id
    assert record.action == "GET_PARROQUIA"
    assert record.role == "catequista"
    assert record.method == "GET"


@pytest.mark.asyncio
async def test_other_parish_is_rejected_before_handler(
    make_pipeline, jwt_cfg, activity, activity_records
):
    entry = make_entry(Role.catequista, parish_id=PARISH_1)
    pipeline = make_pipeline(FakeDirectory(entry))
    handler = RecordingHandler()
    token = issue_token(cfg=jwt_cfg, subject=entry.id)

    result = await pipeline.run(_ctx(policies.GET_PARISH, token, lookup=_lookup(PARISH_2)), handler)

    assert isinstance(result, Rejection)
    assert result.kind is RejectionKind.tenant_mismatch
    assert result.status_code == 403
    assert handler.calls == []
    assert activity.drain() == 0
    assert activity_records == []


@pytest.mark.asyncio
async def test_missing_credential_never_touches_directory(make_pipeline):
    directory = FakeDirectory()
    pipeline = make_pipeline(directory)
    handler = RecordingHandler()

    result = await pipeline.run(_ctx(policies.GET_PROFILE, None), handler)

    assert isinstance(result, Rejection)
    assert result.kind is RejectionKind.missing_credential
    assert directory.calls == []
    assert handler.calls == []


@pytest.mark.asyncio
async def test_directory_failure_is_distinct(make_pipeline, jwt_cfg):
    pipeline = make_pipeline(FakeDirectory(fail=True))
    token = issue_token(cfg=jwt_cfg, subject="whoever")

    result = await pipeline.run(_ctx(policies.GET_PROFILE, token), RecordingHandler())

    assert isinstance(result, Rejection)
    assert result.kind is RejectionKind.directory_unavailable
    assert result.status_code == 503


@pytest.mark.asyncio
async def test_unknown_and_inactive_principals(make_pipeline, jwt_cfg):
    inactive = make_entry(active=False)
    pipeline = make_pipeline(FakeDirectory(inactive))

    unknown = await pipeline.run(
        _ctx(policies.GET_PROFILE, issue_token(cfg=jwt_cfg, subject="ghost")), RecordingHandler()
    )
    assert isinstance(unknown, Rejection)
    assert unknown.kind is RejectionKind.unknown_principal

    blocked = await pipeline.run(
        _ctx(policies.GET_PROFILE, issue_token(cfg=jwt_cfg, subject=inactive.id)),
        RecordingHandler(),
    )
    assert isinstance(blocked, Rejection)
    assert blocked.kind is RejectionKind.inactive_principal
    assert blocked.status_code == 401


@pytest.mark.asyncio
async def test_admitted_principal_carries_no_secret(make_pipeline, jwt_cfg):
    entry = make_entry()
    assert entry.password_hash
    pipeline = make_pipeline(FakeDirectory(entry))

    admitted = await pipeline.admit(
        _ctx(policies.GET_PROFILE, issue_token(cfg=jwt_cfg, subject=entry.id))
    )

    assert isinstance(admitted, GateContext)
    principal = admitted.principal
    assert principal is not None
    assert "password_hash" not in {f.name for f in dataclasses.fields(principal)}
    assert not hasattr(principal, "password_hash")


@pytest.mark.asyncio
async def test_rate_limit_runs_before_role_gate(make_pipeline, jwt_cfg):
    entry = make_entry(Role.consulta)
    pipeline = make_pipeline(FakeDirectory(entry), api_quota=1)
    token = issue_token(cfg=jwt_cfg, subject=entry.id)

    first = await pipeline.run(_ctx(policies.GET_PARISH, token), RecordingHandler())
    assert isinstance(first, Rejection)
    assert first.kind is RejectionKind.insufficient_role

    second = await pipeline.run(_ctx(policies.GET_PARISH, token), RecordingHandler())
    assert isinstance(second, Rejection)
    assert second.kind is RejectionKind.rate_limited
    assert second.retry_after is not None and second.retry_after > 0
    assert second.details()["retryAfter"] >= 1


@pytest.mark.asyncio
async def test_must_change_password_blocks_until_allow_listed(make_pipeline, jwt_cfg):
    entry = make_entry(Role.parroco, must_change_password=True)
    pipeline = make_pipeline(FakeDirectory(entry))
    token = issue_token(cfg=jwt_cfg, subject=entry.id)

    blocked = await pipeline.run(
        _ctx(policies.GET_PARISH, token, lookup=_lookup(PARISH_1)), RecordingHandler()
    )
    assert isinstance(blocked, Rejection)
    assert blocked.kind is RejectionKind.credential_change_required

    allowed = await pipeline.run(_ctx(policies.CHANGE_PASSWORD, token), RecordingHandler())
    assert isinstance(allowed, HandlerOutcome) and allowed.success


@pytest.mark.asyncio
async def test_failed_outcome_is_not_recorded(make_pipeline, jwt_cfg, activity):
    entry = make_entry()
    pipeline = make_pipeline(FakeDirectory(entry))
    handler = RecordingHandler(HandlerOutcome.fail("nope", status_code=400))

    outcome = await pipeline.run(
        _ctx(policies.UPDATE_PROFILE, issue_token(cfg=jwt_cfg, subject=entry.id)), handler
    )

    assert isinstance(outcome, HandlerOutcome) and not outcome.success
    assert outcome.body["message"] == "nope"
    assert activity.drain() == 0


@pytest.mark.asyncio
async def test_cancelled_handler_still_counts_against_quota(make_pipeline, jwt_cfg):
    entry = make_entry()
    pipeline = make_pipeline(FakeDirectory(entry), api_quota=1)
    token = issue_token(cfg=jwt_cfg, subject=entry.id)

    async def cancelled(_: Principal | None) -> HandlerOutcome:
        raise asyncio.CancelledError

    with pytest.raises(asyncio.CancelledError):
        await pipeline.run(_ctx(policies.GET_PROFILE, token), cancelled)

    result = await pipeline.run(_ctx(policies.GET_PROFILE, token), RecordingHandler())
    assert isinstance(result, Rejection)
    assert result.kind is RejectionKind.rate_limited


# --- Optional auth ------------------------------------------------------------


@pytest.mark.asyncio
async def test_optional_entry_without_credential_is_anonymous(make_pipeline, activity):
    pipeline = make_pipeline(FakeDirectory())
    handler = RecordingHandler()

    outcome = await pipeline.run_optional(_ctx(policies.API_INFO, None), handler)

    assert isinstance(outcome, HandlerOutcome) and outcome.success
    assert handler.calls == [None]
    # Nobody to attribute the activity to.
    assert activity.drain() == 0


@pytest.mark.asyncio
async def test_optional_entry_still_rejects_bad_credentials(make_pipeline):
    pipeline = make_pipeline(FakeDirectory())
    handler = RecordingHandler()

    result = await pipeline.run_optional(_ctx(policies.API_INFO, "garbage"), handler)

    assert isinstance(result, Rejection)
    assert result.kind is RejectionKind.invalid_credential
    assert handler.calls == []


@pytest.mark.asyncio
async def test_optional_entry_with_token_resolves_principal(make_pipeline, jwt_cfg):
    entry = make_entry(Role.secretaria)
    pipeline = make_pipeline(FakeDirectory(entry))
    handler = RecordingHandler()

    await pipeline.run_optional(
        _ctx(policies.API_INFO, issue_token(cfg=jwt_cfg, subject=entry.id)), handler
    )

    assert handler.calls == [entry.to_principal()]


@pytest.mark.asyncio
async def test_required_entry_rejects_anonymous(make_pipeline):
    pipeline = make_pipeline(FakeDirectory())
    result = await pipeline.run(_ctx(policies.API_INFO, None), RecordingHandler())
    assert isinstance(result, Rejection)
    assert result.kind is RejectionKind.missing_credential


@pytest.mark.asyncio
async def test_anonymous_login_is_attributed_to_actor(make_pipeline, activity, activity_records):
    entry = make_entry(Role.catequista)
    pipeline = make_pipeline(FakeDirectory(entry))
    handler = RecordingHandler(HandlerOutcome.ok(actor=entry.to_principal()))

    await pipeline.run_public(_ctx(policies.LOGIN, None), handler)

    assert activity.drain() == 1
    assert activity_records[0].principal_id == entry.id
    assert activity_records[0].action == "LOGIN"


@pytest.mark.asyncio
async def test_anonymous_login_attempts_are_limited_per_origin(make_pipeline):
    pipeline = make_pipeline(FakeDirectory())
    fail = HandlerOutcome.fail("Invalid credentials", status_code=401)

    for _ in range(10):
        outcome = await pipeline.run_public(_ctx(policies.LOGIN, None), RecordingHandler(fail))
        assert isinstance(outcome, HandlerOutcome)

    result = await pipeline.run_public(_ctx(policies.LOGIN, None), RecordingHandler(fail))
    assert isinstance(result, Rejection)
    assert result.kind is RejectionKind.rate_limited


@pytest.mark.asyncio
async def test_public_entry_ignores_any_credential(make_pipeline, jwt_cfg):
    entry = make_entry(must_change_password=True)
    directory = FakeDirectory(entry)
    pipeline = make_pipeline(directory)
    expired = issue_token(
        cfg=jwt_cfg,
        subject=entry.id,
        ttl=timedelta(minutes=1),
        now=datetime.now(tz=UTC) - timedelta(hours=1),
    )
    valid = issue_token(cfg=jwt_cfg, subject=entry.id)

    for credential in ("garbage", expired, valid):
        handler = RecordingHandler()
        outcome = await pipeline.run_public(_ctx(policies.LOGIN, credential), handler)
        assert isinstance(outcome, HandlerOutcome) and outcome.success
        assert handler.calls == [None]
    assert directory.calls == []


@pytest.mark.asyncio
async def test_public_entry_limits_by_origin_even_with_a_token(make_pipeline, jwt_cfg):
    entry = make_entry()
    pipeline = make_pipeline(FakeDirectory(entry))
    token = issue_token(cfg=jwt_cfg, subject=entry.id)

    for _ in range(10):
        await pipeline.run_public(_ctx(policies.LOGIN, token), RecordingHandler())

    result = await pipeline.run_public(_ctx(policies.LOGIN, None), RecordingHandler())
    assert isinstance(result, Rejection)
    assert result.kind is RejectionKind.rate_limited


class RaisingDirectory:
    async def resolve(self, principal_id: str):
        raise RuntimeError("driver blew up")


@pytest.mark.asyncio
async def test_unexpected_directory_error_is_unavailable(make_pipeline, jwt_cfg):
    pipeline = make_pipeline(RaisingDirectory())
    handler = RecordingHandler()

    result = await pipeline.run(
        _ctx(policies.GET_PROFILE, issue_token(cfg=jwt_cfg, subject="anyone")), handler
    )

    assert isinstance(result, Rejection)
    assert result.kind is RejectionKind.directory_unavailable
    assert result.status_code == 503
    assert handler.calls == []


def test_unknown_limiter_fails_fast(make_pipeline):
    pipeline = make_pipeline(FakeDirectory())
    pipeline.check_policies(policies.ROUTE_POLICIES.values())
    with pytest.raises(ValueError):
        pipeline.check_policies([RoutePolicy(action="X", limiter="nope")])
