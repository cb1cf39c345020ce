"""
Redis client.

Async Redis wrapper used for the job-status cache read by polling clients.
"""

import json
from typing import Any, Optional

import redis.asyncio as redis

from shared.config import settings
from shared.errors import ConfigError, RetryableError
from shared.logging import get_logger

logger = get_logger("redis")

KEY_PREFIX = "canvascast:cache:"


class RedisClient:
    """Async Redis client with a key prefix and JSON helpers."""

    def __init__(self, url: Optional[str] = None, prefix: str = KEY_PREFIX):
        """
        Initialize Redis client.

        Args:
            url: Redis URL (defaults to settings.redis_url)
            prefix: Prefix applied to every key
        """
        try:
            self.client = redis.from_url(url or settings.redis_url)
            self.prefix = prefix
        except Exception as e:
            raise ConfigError(f"Failed to initialize Redis client: {str(e)}") from e

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        """
        Set a string value.

        Args:
            key: Cache key (prefix added)
            value: String value
            ex: Optional TTL in seconds

        Returns:
            True if the value was written
        """
        try:
            result = await self.client.set(self._key(key), value.encode("utf-8"), ex=ex)
            return bool(result)
        except Exception as e:
            raise RetryableError(f"Failed to set Redis key {key}: {str(e)}") from e

    async def get(self, key: str) -> Optional[str]:
        """Get a string value, or None if missing."""
        try:
            value = await self.client.get(self._key(key))
        except Exception as e:
            raise RetryableError(f"Failed to get Redis key {key}: {str(e)}") from e
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if a key was removed."""
        try:
            return await self.client.delete(self._key(key)) > 0
        except Exception as e:
            raise RetryableError(f"Failed to delete Redis key {key}: {str(e)}") from e

    async def set_json(self, key: str, data: Any, ttl: Optional[int] = None) -> bool:
        """Serialize `data` to JSON and store it."""
        return await self.set(key, json.dumps(data, default=str), ex=ttl)

    async def get_json(self, key: str) -> Optional[Any]:
        """Load a JSON value, or None if missing."""
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise RetryableError(f"Failed to decode JSON for key {key}: {str(e)}") from e

    async def health_check(self) -> bool:
        """Ping Redis."""
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.warning("Redis health check failed", extra={"error": str(e)})
            return False

    async def close(self) -> None:
        """Close the connection pool."""
        await self.client.aclose()
