"""
tests.test_smoke

Minimal smoke tests to validate the service can boot and serve core endpoints.

Responsibilities:
- Ensure the FastAPI app starts and DB readiness probe works in test mode.
- Ensure the dev token route is mounted outside prod only.
"""

from __future__ import annotations

import pytest

from catequesis_api.api.app import create_app
from catequesis_api.settings import Settings

from .conftest import auth_header, seed_user


@pytest.mark.asyncio
async def test_health_endpoints(client) -> None:
    r = await client.get("/healthz")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"

    r = await client.get("/readyz")
    assert r.status_code == 200
    assert r.json()["status"] == "ready"


@pytest.mark.asyncio
async def test_dev_token_still_goes_through_the_directory(app, client) -> None:
    user = await seed_user(app, username="dev")

    r = await client.post("/v1/dev/token", json={"subject": str(user.id)})
    assert r.status_code == 200
    token = r.json()["access_token"]
    r = await client.get("/api/auth/verify", headers=auth_header(token))
    assert r.status_code == 200

    r = await client.post("/v1/dev/token", json={"subject": "ghost"})
    token = r.json()["access_token"]
    r = await client.get("/api/auth/verify", headers=auth_header(token))
    assert r.status_code == 401
    assert r.json()["code"] == "UnknownPrincipal"


def test_prod_refuses_default_secret_and_hides_dev_routes() -> None:
    with pytest.raises(ValueError):
        Settings(env="prod")

    settings = Settings(env="prod", jwt_secret="prod-secret-0123456789abcdef0123456")
    app = create_app(settings=settings)
    paths = {getattr(route, "path", None) for route in app.routes}
    assert "/v1/dev/token" not in paths
    assert "/api/auth/login" in paths


# --- Module Notes -----------------------------------------------------------
# Domain endpoints beyond parishes plug into the same `api.gating.guard`.
