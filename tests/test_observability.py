"""
tests.test_observability

Logging processors and request-context middleware.
"""

from __future__ import annotations

import pytest

from catequesis_api.observability.logging import _redact_secrets


def test_redacts_credential_fields() -> None:
    event = {"event": "login", "password": "hunter2", "token": "abc", "username": "maria"}
    out = _redact_secrets(None, "info", event)
    assert out["password"] == "***"
    assert out["token"] == "***"
    assert out["username"] == "maria"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client) -> None:
    r = await client.get("/healthz", headers={"x-request-id": "req-123"})
    assert r.headers["x-request-id"] == "req-123"

    r = await client.get("/healthz")
    assert r.headers["x-request-id"]
