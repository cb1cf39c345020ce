"""
Tests for bearer-token authentication.
"""

from uuid import uuid4

import pytest


@pytest.mark.asyncio
async def test_valid_token_is_accepted_and_cached(client, make_token, user_id, cache):
    headers = {"Authorization": f"Bearer {make_token(user_id)}"}

    response = await client.get("/api/v1/credits/balance", headers=headers)

    assert response.status_code == 200
    cached = [v for k, v in cache.entries.items() if k.startswith("jwt_valid:")]
    assert cached == [{"user_id": str(user_id), "email": "user@example.com", "role": None}]


@pytest.mark.asyncio
async def test_cached_token_skips_decoding(client, make_token, user_id, cache):
    headers = {"Authorization": f"Bearer {make_token(user_id)}"}
    await client.get("/api/v1/credits/balance", headers=headers)
    cache.set_json.reset_mock()

    await client.get("/api/v1/credits/balance", headers=headers)

    cache.set_json.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_token(client):
    response = await client.get("/api/v1/credits/balance")

    assert response.status_code == 401
    assert response.json()["detail"] == "Missing authentication token"


@pytest.mark.asyncio
async def test_token_signed_with_wrong_secret(client, make_token):
    token = make_token(uuid4(), secret="not-the-real-secret-0000000000000000")

    response = await client.get("/api/v1/credits/balance", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_without_subject(client, make_token):
    response = await client.get(
        "/api/v1/credits/balance",
        headers={"Authorization": f"Bearer {make_token(None)}"}
    )

    assert response.status_code == 401
    assert "missing user_id" in response.json()["detail"]


@pytest.mark.asyncio
async def test_cache_failure_does_not_block_auth(client, auth_headers, cache):
    cache.get_json.side_effect = ConnectionError("redis down")
    cache.set_json.side_effect = ConnectionError("redis down")

    response = await client.get("/api/v1/credits/balance", headers=auth_headers)

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_health(client, cache):
    response = await client.get("/health")

    assert response.json() == {"status": "healthy", "redis": True}

    cache.health_check.return_value = False
    response = await client.get("/health")

    assert response.json()["status"] == "degraded"
