from typing import Any

import redis.asyncio as redis
from loguru import logger

from app.core.config import settings


class RedisService:
    def __init__(self) -> None:
        self._client: redis.Redis | None = None
        if not settings.REDIS_URL:
            logger.warning("REDIS_URL is not set. Redis operations will fail until configured.")

    async def get_client(self) -> redis.Redis:
        if self._client is None:
            logger.info("Creating Redis client for RedisService")
            self._client = redis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                encoding="utf-8",
                socket_connect_timeout=5,
                socket_timeout=5,
                max_connections=getattr(settings, "REDIS_MAX_CONNECTIONS", 100),
                health_check_interval=30,
                socket_keepalive=True,
            )
        return self._client

    async def set(self, key: str, value: Any) -> None:
        """Store a value in Redis.

        Args:
            key: The key to store the value under
            value: The value to store (will be converted to string)

        Raises:
            redis.RedisError, OSError: when the write fails. Callers decide whether that is fatal.
        """
        client = await self.get_client()
        str_value = str(value)
        await client.set(key, str_value)

    async def get(self, key: str) -> str | None:
        """Get a value from Redis by key.

        Returns:
            The value as a string, or None if key doesn't exist

        Raises:
            redis.RedisError, OSError: when the read fails.
        """
        client = await self.get_client()
        return await client.get(key)

    async def push(self, key: str, value: str) -> int:
        """Append a value to the list stored at key and return the new length."""
        client = await self.get_client()
        return await client.rpush(key, value)

    async def zadd(self, key: str, member: str, score: float) -> None:
        client = await self.get_client()
        await client.zadd(key, {member: score})

    async def zrangebyscore(self, key: str, min_score: float | str, max_score: float | str = "+inf") -> list[str]:
        client = await self.get_client()
        return await client.zrangebyscore(key, min_score, max_score)

    async def close(self) -> None:
        """Close and disconnect the Redis client"""
        if self._client is not None:
            try:
                await self._client.close()
                logger.info("RedisService client closed")
            except Exception as exc:
                logger.warning(f"Failed to close RedisService client: {exc}")
            finally:
                self._client = None


redis_service = RedisService()
