"""Redis caching layer for expensive read-only responses.

The cache is optional: every failure is logged and treated as a miss, and
after a failed connection attempt Redis is not retried for a short while.
"""
import json
import time
from typing import Any, Optional
import structlog

import redis.asyncio as redis

from awards_api.config import settings

logger = structlog.get_logger(__name__)

RECONNECT_BACKOFF_SECONDS = 30


class RedisCache:
    """Redis-based caching layer."""

    def __init__(self, url: Optional[str] = None):
        """Initialize Redis connection settings."""
        self.url = url or settings.redis_url
        self.redis_client: Optional[redis.Redis] = None
        self._initialized = False
        self._retry_after = 0.0

    async def _ensure_connection(self) -> redis.Redis:
        """
        Ensure Redis connection is established.

        Returns:
            Redis client instance

        Raises:
            ConnectionError: While backing off after a failed attempt
        """
        if self._initialized and self.redis_client is not None:
            return self.redis_client

        if time.monotonic() < self._retry_after:
            raise ConnectionError("Redis unavailable, backing off")

        try:
            self.redis_client = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
            # Test connection
            await self.redis_client.ping()
            self._initialized = True
            logger.info("redis_connected")
        except Exception as e:
            self._retry_after = time.monotonic() + RECONNECT_BACKOFF_SECONDS
            logger.warning("redis_connection_failed", error=str(e))
            raise

        return self.redis_client

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired/unavailable
        """
        try:
            client = await self._ensure_connection()
            value = await client.get(key)

            if value is None:
                logger.debug("cache_miss", key=key)
                return None

            logger.debug("cache_hit", key=key)

            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return value

        except Exception as e:
            logger.debug("cache_get_failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache (JSON serialized if dict/list)
            ttl: Time-to-live in seconds (default: settings.stats_cache_ttl_seconds)

        Returns:
            True if successful, False otherwise
        """
        if ttl is None:
            ttl = settings.stats_cache_ttl_seconds

        try:
            client = await self._ensure_connection()

            if isinstance(value, (dict, list)):
                value = json.dumps(value, default=str)

            await client.setex(key, ttl, value)

            logger.debug("cache_set", key=key, ttl=ttl)
            return True

        except Exception as e:
            logger.debug("cache_set_failed", key=key, error=str(e))
            return False

    async def ping(self) -> bool:
        """Connectivity check used by the readiness probe."""
        try:
            client = await self._ensure_connection()
            return bool(await client.ping())
        except Exception:
            return False

    async def close(self):
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.aclose()
            self._initialized = False
            logger.info("redis_closed")


# Global cache instance
cache = RedisCache()


def get_cache() -> RedisCache:
    """Dependency returning the process-wide cache."""
    return cache


def cache_key(entity_type: str, *parts: Any) -> str:
    """
    Generate consistent cache key.

    Args:
        entity_type: Key namespace (oscar_stats, plans, ...)
        parts: Values that distinguish cached variants; None parts are skipped

    Returns:
        Cache key string
    """
    return ":".join([entity_type, *(str(part) for part in parts if part is not None)])
