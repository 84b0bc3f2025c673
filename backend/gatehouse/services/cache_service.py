"""
Redis caching service for amenity availability.

CACHING STRATEGY
================

What we cache:
  - Availability responses for one amenity in one building for one month
  - Key pattern: "availability:{amenity}:{building}:{year}-{month}:{today}"
    ("today" is part of the key because the listing starts at today)

Why:
  - Residents open the booking calendar far more often than they book
  - Building the month view means a grouped COUNT over the bookings table

Invalidation strategy:
  - Any booking created, rejected or cancelled for an amenity in a building
    deletes every cached month for that pair ("availability:{a}:{b}:*")
  - Approval doesn't change capacity, so it leaves the cache alone
  - Editing an amenity drops its cached months in every building
  - TTL-based expiry as safety net (5 minutes)

The cache is advisory only. Admission re-counts inside its own transaction,
so a stale calendar can at worst show a slot that then fails with SlotFull.
When Redis is disabled or unreachable every call here is a no-op.
"""

import json
from typing import Optional

import redis.asyncio as redis
from gatehouse.core.config import get_settings
from gatehouse.core.logging import get_logger
from gatehouse.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await client.ping()
            _redis_client = client
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _availability_prefix(amenity_id: int, building_id: int) -> str:
    return f"availability:{amenity_id}:{building_id}:"


def _availability_key(amenity_id: int, building_id: int, year: int, month: int, today: str) -> str:
    return f"{_availability_prefix(amenity_id, building_id)}{year}-{month:02d}:{today}"


async def get_cached_availability(
    amenity_id: int, building_id: int, year: int, month: int, today: str
) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = _availability_key(amenity_id, building_id, year, month, today)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=data is not None)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_availability(
    amenity_id: int, building_id: int, year: int, month: int, today: str, data: dict
) -> None:
    client = await get_redis()
    if not client:
        return

    key = _availability_key(amenity_id, building_id, year, month, today)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        record_cache_operation("set", hit=False)
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_availability(amenity_id: int, building_id: Optional[int] = None) -> None:
    """Drop cached months for one building, or for every building when building_id is None."""
    client = await get_redis()
    if not client:
        return

    if building_id is None:
        pattern = f"availability:{amenity_id}:*"
    else:
        pattern = _availability_prefix(amenity_id, building_id) + "*"
    try:
        deleted = 0
        async for key in client.scan_iter(match=pattern, count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", pattern=pattern, keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", pattern=pattern, error=str(e))


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
