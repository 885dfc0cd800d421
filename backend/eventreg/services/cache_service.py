"""
Redis caching for per-event registration summaries.

CACHING STRATEGY
================

What we cache:
  - The confirmed registration count shown by the status endpoint
  - Cache key pattern: "events:registration:{event_id}"

Why:
  - The status view is polled far more often than people register
  - "Spots remaining" is display-only; it is allowed to lag behind writes

Invalidation strategy:
  - After every committed registration or cancellation the event's key is
    deleted (routes call invalidate_registration_summary)
  - Short TTL as safety net (REDIS_CACHE_TTL)

Never used for admission: seat decisions always go through the capacity
ledger inside the database transaction. Redis errors are logged and treated
as a cache miss.
"""

import json
from typing import Optional

from eventreg.core.config import get_settings
from eventreg.core.logging import get_logger
from eventreg.infrastructure.redis_client import get_redis

logger = get_logger(__name__)


def _make_summary_key(event_id: int) -> str:
    return f"events:registration:{event_id}"


async def get_cached_summary(event_id: int) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = _make_summary_key(event_id)
    try:
        data = await client.get(key)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_summary(event_id: int, data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    settings = get_settings()
    key = _make_summary_key(event_id)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_registration_summary(event_id: int) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_summary_key(event_id)
    try:
        await client.delete(key)
        logger.debug("cache_invalidated", key=key)
    except Exception as e:
        logger.error("cache_invalidation_error", key=key, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
