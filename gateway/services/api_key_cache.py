from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from redis.exceptions import RedisError

from gateway.logging_config import logger
from gateway.models import APIKey, as_utc
from gateway.redis_client import redis_delete, redis_get_json, redis_set_json
from gateway.settings import settings

CACHE_KEY_TEMPLATE = "auth:api-key:{key_hash}"


class CachedAPIKey(BaseModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    id: str
    user_id: str
    user_is_active: bool
    name: str
    expires_at: datetime | None = None
    is_active: bool = True
    model_access_mode: str = "all"
    model_access_list: list[str] = Field(default_factory=list)


def build_cache_entry(api_key: APIKey) -> CachedAPIKey:
    user = api_key.user
    return CachedAPIKey(
        id=str(api_key.id),
        user_id=str(api_key.user_id),
        user_is_active=user.is_active if user is not None else False,
        name=api_key.name,
        expires_at=as_utc(api_key.expires_at),
        is_active=api_key.is_active,
        model_access_mode=api_key.model_access_mode,
        model_access_list=list(api_key.model_access_list or []),
    )


async def get_cached_api_key(redis, key_hash: str) -> CachedAPIKey | None:
    key = CACHE_KEY_TEMPLATE.format(key_hash=key_hash)
    data = await redis_get_json(redis, key)
    if not data:
        return None
    try:
        return CachedAPIKey.model_validate(data)
    except ValidationError:
        await redis_delete(redis, key)
        return None


def _compute_ttl_seconds(entry: CachedAPIKey) -> int:
    ttl = settings.api_key_cache_ttl_seconds
    if entry.expires_at is None:
        return ttl
    remaining = int(entry.expires_at.timestamp() - datetime.now(UTC).timestamp())
    if remaining <= 0:
        return 0
    return min(ttl, remaining)


async def cache_api_key(redis, key_hash: str, entry: CachedAPIKey) -> None:
    # Revoked keys are never cached so a stale "active" copy cannot outlive revocation.
    if not entry.is_active:
        await invalidate_cached_api_key(redis, key_hash)
        return
    ttl_seconds = _compute_ttl_seconds(entry)
    if ttl_seconds == 0:
        return
    key = CACHE_KEY_TEMPLATE.format(key_hash=key_hash)
    await redis_set_json(redis, key, entry.model_dump(mode="json"), ttl_seconds=ttl_seconds)


async def invalidate_cached_api_key(redis, key_hash: str) -> None:
    await redis_delete(redis, CACHE_KEY_TEMPLATE.format(key_hash=key_hash))


async def drop_cached_api_key(redis, key_hash: str) -> None:
    """Best-effort invalidation after a key mutation; the DB row is already committed."""
    try:
        await invalidate_cached_api_key(redis, key_hash)
    except (RedisError, OSError):
        logger.warning("Failed to invalidate API key cache for %s", key_hash[:12], exc_info=True)


__all__ = [
    "CACHE_KEY_TEMPLATE",
    "CachedAPIKey",
    "build_cache_entry",
    "cache_api_key",
    "drop_cached_api_key",
    "get_cached_api_key",
    "invalidate_cached_api_key",
]
