"""Cache service with Protocol pattern for dependency injection.

Provides RedisCacheService (run leases backed by Redis) and NullCacheService
(no-op fallback that always grants the lease).
"""

import logging
import uuid
from typing import Protocol

import redis

from ..config import settings

logger = logging.getLogger(__name__)

# Compare-and-delete so a run never releases a lease taken over by another run.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

_REFRESH_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
end
return 0
"""


class CacheService(Protocol):
    """Cache service interface."""

    def acquire_lock(self, key: str, ttl: int) -> str | None: ...
    def release_lock(self, key: str, token: str) -> None: ...
    def refresh_lock(self, key: str, token: str, ttl: int) -> bool: ...


class RedisCacheService:
    """Redis-backed lease implementation."""

    def __init__(self, redis_url: str) -> None:
        self._client = redis.from_url(redis_url, decode_responses=True)
        self._client.ping()

    def acquire_lock(self, key: str, ttl: int) -> str | None:
        token = uuid.uuid4().hex
        try:
            if self._client.set(key, token, nx=True, ex=ttl):
                return token
            return None
        except redis.RedisError:
            logger.warning("Redis unavailable, granting lease %s without lock", key)
            return token

    def release_lock(self, key: str, token: str) -> None:
        try:
            self._client.eval(_RELEASE_SCRIPT, 1, key, token)
        except redis.RedisError:
            logger.warning("Could not release lease %s", key)

    def refresh_lock(self, key: str, token: str, ttl: int) -> bool:
        """Extend the lease TTL if it is still ours. False when it was lost."""
        try:
            return bool(self._client.eval(_REFRESH_SCRIPT, 1, key, token, ttl))
        except redis.RedisError:
            logger.warning("Could not refresh lease %s", key)
            return True


class NullCacheService:
    """No-op lease for when Redis is unavailable."""

    def acquire_lock(self, key: str, ttl: int) -> str | None:
        return "null"

    def release_lock(self, key: str, token: str) -> None:
        pass

    def refresh_lock(self, key: str, token: str, ttl: int) -> bool:
        return True


def create_cache_service() -> CacheService:
    """Factory: create the appropriate cache service based on configuration."""
    if not settings.redis_url:
        return NullCacheService()
    try:
        return RedisCacheService(settings.redis_url)
    except Exception:
        logger.warning("Redis not reachable at startup, run leases disabled")
        return NullCacheService()
