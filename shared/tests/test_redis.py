"""
Tests for Redis client.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from shared.redis_client import RedisClient, KEY_PREFIX
from shared.errors import RetryableError, ConfigError


@pytest.fixture
def redis_client():
    """Create a Redis client with a mocked connection."""
    client = RedisClient.__new__(RedisClient)
    client.client = AsyncMock()
    client.prefix = KEY_PREFIX
    return client


def test_redis_client_initialization_failure():
    """Test that ConfigError is raised on initialization failure."""
    with patch("shared.redis_client.redis.from_url", side_effect=Exception("bad url")):
        with pytest.raises(ConfigError, match="Failed to initialize Redis client"):
            RedisClient("redis://localhost:6379")


@pytest.mark.asyncio
async def test_redis_set(redis_client):
    redis_client.client.set = AsyncMock(return_value=True)

    assert await redis_client.set("job_status:1", "value", ex=30) is True
    redis_client.client.set.assert_called_once_with(f"{KEY_PREFIX}job_status:1", b"value", ex=30)


@pytest.mark.asyncio
async def test_redis_get_decodes_bytes(redis_client):
    redis_client.client.get = AsyncMock(return_value=b"value")

    assert await redis_client.get("key") == "value"


@pytest.mark.asyncio
async def test_redis_get_none(redis_client):
    redis_client.client.get = AsyncMock(return_value=None)

    assert await redis_client.get("missing") is None


@pytest.mark.asyncio
async def test_redis_delete(redis_client):
    redis_client.client.delete = AsyncMock(return_value=1)

    assert await redis_client.delete("key") is True


@pytest.mark.asyncio
async def test_redis_json_round_trip(redis_client):
    data = {"status": "READY", "progress": 100}
    redis_client.client.get = AsyncMock(return_value=json.dumps(data).encode("utf-8"))

    assert await redis_client.get_json("key") == data


@pytest.mark.asyncio
async def test_redis_get_json_invalid(redis_client):
    redis_client.client.get = AsyncMock(return_value=b"not json")

    with pytest.raises(RetryableError, match="Failed to decode JSON"):
        await redis_client.get_json("key")


@pytest.mark.asyncio
async def test_redis_set_raises_retryable_error(redis_client):
    redis_client.client.set = AsyncMock(side_effect=Exception("Connection failed"))

    with pytest.raises(RetryableError, match="Failed to set Redis key"):
        await redis_client.set("key", "value")


@pytest.mark.asyncio
async def test_redis_health_check_failure(redis_client):
    redis_client.client.ping = AsyncMock(side_effect=Exception("down"))

    assert await redis_client.health_check() is False
