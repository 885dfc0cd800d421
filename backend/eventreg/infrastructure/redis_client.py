"""
Redis client shared by the registration summary cache and the redis
notification sink. Separated from business logic for clean architecture.

Redis is optional: when disabled or unreachable, get_redis() returns None and
callers degrade (no cache, sink reports a failed delivery).
"""

from typing import Optional

import redis.asyncio as redis

from eventreg.core.config import get_settings
from eventreg.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Lazily connected singleton with connection pooling."""

    _instance: Optional[redis.Redis] = None

    @classmethod
    async def get_client(cls) -> Optional[redis.Redis]:
        settings = get_settings()
        if not settings.REDIS_ENABLED:
            return None

        if cls._instance is None:
            try:
                client = redis.from_url(
                    settings.REDIS_URL,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30,
                )
                await client.ping()
                cls._instance = client
                logger.info("redis_connected", url=settings.REDIS_URL)
            except Exception as e:
                logger.error("redis_connection_failed", error=str(e))
                return None
        return cls._instance

    @classmethod
    async def close(cls) -> None:
        if cls._instance is not None:
            await cls._instance.aclose()
            cls._instance = None


async def get_redis() -> Optional[redis.Redis]:
    return await RedisClient.get_client()


async def close_redis() -> None:
    await RedisClient.close()
