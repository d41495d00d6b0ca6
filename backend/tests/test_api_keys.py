"""API key management: one active key per user, raw key shown once, owner-scoped revoke."""

import uuid

from sqlalchemy import select

from conftest import bearer, make_session_token

from technodog_api.auth.hashing import hash_api_key
from technodog_api.models.api_key import APIKey


async def test_issue_returns_raw_key_once(client, session, owner_headers, user_id):
    response = await client.post("/api/keys", json={"name": "CLI"}, headers=owner_headers)
    assert response.status_code == 201
    body = response.json()
    raw = body["api_key"]
    assert raw.startswith(body["key"]["prefix"] + ".")
    assert body["key"]["name"] == "CLI"
    assert body["key"]["scopes"] == ["read:public"]
    assert "key_hash" not in body["key"]

    stored = (await session.execute(select(APIKey))).scalar_one()
    assert stored.key_hash == hash_api_key(raw)
    assert stored.user_id == user_id

    listed = (await client.get("/api/keys", headers=owner_headers)).json()
    assert raw not in str(listed)
    assert listed["keys"][0]["prefix"] == body["key"]["prefix"]

    # The new key works against the public API.
    assert (await client.get("/api/v1/ping", headers=bearer(raw))).status_code == 200


async def test_issue_without_body_uses_defaults(client, owner_headers):
    response = await client.post("/api/keys", headers=owner_headers)
    assert response.status_code == 201
    assert response.json()["key"]["name"] == "Default API Key"


async def test_new_key_revokes_previous(client, owner_headers):
    first = (await client.post("/api/keys", headers=owner_headers)).json()["api_key"]
    second = (await client.post("/api/keys", headers=owner_headers)).json()["api_key"]

    assert (await client.get("/api/v1/ping", headers=bearer(first))).status_code == 401
    assert (await client.get("/api/v1/ping", headers=bearer(second))).status_code == 200

    statuses = sorted(k["status"] for k in (await client.get("/api/keys", headers=owner_headers)).json()["keys"])
    assert statuses == ["active", "revoked"]


async def test_revoke(client, owner_headers):
    created = (await client.post("/api/keys", headers=owner_headers)).json()
    key_id, raw = created["key"]["id"], created["api_key"]

    stranger = bearer(make_session_token(uuid.uuid4()))
    assert (await client.delete(f"/api/keys/{key_id}", headers=stranger)).status_code == 404
    assert (await client.get("/api/v1/ping", headers=bearer(raw))).status_code == 200

    response = await client.delete(f"/api/keys/{key_id}", headers=owner_headers)
    assert response.json() == {"success": True, "message": "API key revoked"}
    assert (await client.get("/api/v1/ping", headers=bearer(raw))).status_code == 401
