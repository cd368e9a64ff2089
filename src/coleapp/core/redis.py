"""Redis client lifecycle for the tenant-resolution cache.

Redis is optional: with REDIS_URL unset, create_redis() returns None and
tenant resolution always goes to the directory.
"""

from __future__ import annotations

import redis.asyncio as aioredis


def create_redis(url: str) -> aioredis.Redis | None:
    """Create a Redis client for url, or None when caching is disabled."""
    if not url:
        return None
    return aioredis.from_url(url, decode_responses=True)


async def close_redis(client: aioredis.Redis | None) -> None:
    """Close the Redis connection pool."""
    if client is not None:
        await client.aclose()
