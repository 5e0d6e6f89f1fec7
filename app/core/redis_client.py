"""Redis connection and the cache used for roles, month listings and revoked tokens."""

import json
from typing import Any, cast

import redis

from app.config import settings

_redis_client: redis.Redis | None = None

BLACKLIST_PREFIX = "blacklist:"


def get_redis_client() -> redis.Redis:
    """Shared Redis client, created on first use."""
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """Ping Redis; any error counts as unhealthy."""
    try:
        get_redis_client().ping()
        return True
    except Exception:
        return False


def close_redis_connection() -> None:
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


class CacheManager:
    """
    Redis-backed cache.

    Every operation fails open: a Redis error is reported as a cache miss or
    a failed write, never raised to the caller. Revocation checks are the
    one place where failing open matters, see ``is_blacklisted``.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Set a raw string value, optionally expiring after ``ttl`` seconds."""
        try:
            if ttl:
                self.redis.setex(key, ttl, value)
            else:
                self.redis.set(key, value)
            return True
        except Exception:
            return False

    def delete(self, key: str) -> bool:
        try:
            self.redis.delete(key)
            return True
        except Exception:
            return False

    def exists(self, key: str) -> bool:
        try:
            return bool(self.redis.exists(key))
        except Exception:
            return False

    def get_json(self, key: str) -> Any | None:
        """
        Read and deserialize a cached JSON value.

        Args:
            key: Cache key

        Returns:
            The decoded value, or None on a miss or a Redis error
        """
        try:
            value = cast(str | None, self.redis.get(key))
            return json.loads(value) if value else None
        except Exception:
            return None

    def set_json(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Serialize and cache a value.

        Dates, times and UUIDs are stored as their string form, so readers
        must accept ISO strings back.

        Returns:
            True if the value was written
        """
        try:
            json_value = json.dumps(value, default=str)
        except (TypeError, ValueError):
            return False
        return self.set(key, json_value, ttl=ttl)

    def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a pattern.

        Args:
            pattern: Redis key pattern (e.g., 'events:month:*')

        Returns:
            Number of keys deleted
        """
        try:
            keys = cast(list[str], self.redis.keys(pattern))
            if keys:
                return cast(int, self.redis.delete(*keys))
            return 0
        except Exception:
            return 0

    def blacklist_token(self, token: str, ttl: int) -> bool:
        """Mark a refresh token as revoked for ``ttl`` seconds."""
        return self.set(f"{BLACKLIST_PREFIX}{token}", "1", ttl=ttl)

    def is_blacklisted(self, token: str) -> bool:
        # With Redis down a revoked token is accepted until it expires
        return self.exists(f"{BLACKLIST_PREFIX}{token}")
