"""
Redis helpers shared by the auth cache.

`gateway.deps.get_redis` is the FastAPI dependency; this module owns the
lazily-built client and small JSON accessors.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from redis.asyncio import Redis

from .settings import settings

_redis_client: Optional[Redis] = None


def get_redis_client() -> Redis:
    """
    Return a lazily-created process-wide Redis client.

    Sync on purpose so both dependencies and services can reach it; the
    driver itself is async.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


async def close_redis_client() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


async def redis_get_json(redis: Redis, key: str) -> Optional[Any]:
    """
    Load a JSON value; None on missing key or malformed payload.
    """
    raw = await redis.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


async def redis_set_json(
    redis: Redis, key: str, value: Any, *, ttl_seconds: int | None = None
) -> None:
    data = json.dumps(value, ensure_ascii=False)
    if ttl_seconds is not None:
        await redis.set(key, data, ex=ttl_seconds)
    else:
        await redis.set(key, data)


async def redis_delete(redis: Redis, key: str) -> None:
    await redis.delete(key)


__all__ = [
    "close_redis_client",
    "get_redis_client",
    "redis_delete",
    "redis_get_json",
    "redis_set_json",
]
