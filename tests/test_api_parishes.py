"""
tests.test_api_parishes

Parish endpoints: role and parish scoping over HTTP.
"""

from __future__ import annotations

import uuid

import pytest

from catequesis_api.auth.models import Role

from .conftest import auth_header, seed_parish, seed_user, token_for


@pytest.mark.asyncio
async def test_catequista_is_scoped_to_own_parish(app, client) -> None:
    p1 = await seed_parish(app, "Parroquia Uno")
    p2 = await seed_parish(app, "Parroquia Dos")
    user = await seed_user(app, username="cate1", role=Role.catequista, parish=p1)
    headers = auth_header(token_for(app, user.id))

    r = await client.get(f"/api/parroquias/{p1.id}", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["name"] == "Parroquia Uno"

    r = await client.get(f"/api/parroquias/{p2.id}", headers=headers)
    assert r.status_code == 403
    body = r.json()
    assert body["code"] == "TenantMismatch"
    assert body["value"] == str(p2.id)

    r = await client.get("/api/parroquias", headers=headers)
    assert r.status_code == 200
    assert [p["id"] for p in r.json()["data"]] == [str(p1.id)]


@pytest.mark.asyncio
async def test_admin_sees_every_parish(app, client) -> None:
    p1 = await seed_parish(app, "Alfa")
    p2 = await seed_parish(app, "Beta")
    admin = await seed_user(app, username="root", role=Role.admin)
    headers = auth_header(token_for(app, admin.id))

    r = await client.get("/api/parroquias", headers=headers)
    assert r.status_code == 200
    assert {p["id"] for p in r.json()["data"]} == {str(p1.id), str(p2.id)}

    r = await client.get(f"/api/parroquias/{p2.id}", headers=headers)
    assert r.status_code == 200

    r = await client.get(f"/api/parroquias/{uuid.uuid4()}", headers=headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_missing_parish_for_scoped_user(app, client) -> None:
    p1 = await seed_parish(app, "Gamma")
    user = await seed_user(app, username="sec1", role=Role.secretaria, parish=p1)

    r = await client.get(
        f"/api/parroquias/{uuid.uuid4()}", headers=auth_header(token_for(app, user.id))
    )
    assert r.status_code == 404
    assert r.json()["code"] == "ResourceNotFound"


@pytest.mark.asyncio
async def test_user_without_parish_is_rejected(app, client) -> None:
    p1 = await seed_parish(app, "Delta")
    orphan = await seed_user(app, username="huerfano", role=Role.catequista)

    r = await client.get(f"/api/parroquias/{p1.id}", headers=auth_header(token_for(app, orphan.id)))
    assert r.status_code == 403
    assert r.json()["code"] == "NoTenantAssigned"


@pytest.mark.asyncio
async def test_consulta_cannot_read_single_parish(app, client) -> None:
    p1 = await seed_parish(app, "Epsilon")
    viewer = await seed_user(app, username="visor", role=Role.consulta, parish=p1)
    headers = auth_header(token_for(app, viewer.id))

    r = await client.get(f"/api/parroquias/{p1.id}", headers=headers)
    assert r.status_code == 403
    assert r.json()["code"] == "InsufficientRole"
    assert r.json()["value"] == "consulta"

    r = await client.get("/api/parroquias", headers=headers)
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_create_parish_roles_and_conflict(app, client) -> None:
    p1 = await seed_parish(app, "Zeta")
    cate = await seed_user(app, username="cate2", role=Role.catequista, parish=p1)
    admin = await seed_user(app, username="jefe", role=Role.admin)
    payload = {"name": "Nueva Parroquia", "address": "Calle 1"}

    r = await client.post(
        "/api/parroquias", json=payload, headers=auth_header(token_for(app, cate.id))
    )
    assert r.status_code == 403

    admin_headers = auth_header(token_for(app, admin.id))
    r = await client.post("/api/parroquias", json=payload, headers=admin_headers)
    assert r.status_code == 201
    assert r.json()["data"]["name"] == "Nueva Parroquia"

    r = await client.post("/api/parroquias", json=payload, headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["field"] == "name"


@pytest.mark.asyncio
async def test_non_uuid_parish_id_is_a_validation_error(app, client) -> None:
    admin = await seed_user(app, username="jefa", role=Role.admin)
    r = await client.get("/api/parroquias/abc", headers=auth_header(token_for(app, admin.id)))
    assert r.status_code == 422
    assert r.json()["success"] is False
