"""
Redis Cache Service
===================

Redis connection management, JSON cache operations, key builders and
invalidation hooks for the marketplace read paths (profiles, analytics
dashboards, lunar calendar, weather).
"""

import hashlib
import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from redis.asyncio import Redis

from app.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """
    Initialize the Redis connection pool and pre-warm a connection.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = await redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
            socket_keepalive=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        await _redis_client.ping()
        logger.info("Redis connection established")

    return _redis_client


async def get_redis() -> Redis:
    """Get Redis client, initializing if necessary."""
    if _redis_client is None:
        return await init_redis()

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None
        logger.info("Redis connection closed")


class CacheManager:
    """
    Redis cache manager with common operations.

    Every operation fails soft: a Redis outage degrades to a cache miss.

    Key naming convention:
        cache:{module}:{resource}:{identifier}:{optional_params}

    TTL Guidelines:
        - Auth user lookup: 5 minutes
        - Profile: 5 minutes
        - Analytics dashboards: 5 minutes
        - Weather: 15 minutes
        - Lunar calendar: 24 hours
    """

    TTL_SHORT = 300  # 5 minutes
    TTL_MEDIUM = 900  # 15 minutes
    TTL_LONG = 1800  # 30 minutes
    TTL_HOUR = 3600  # 1 hour
    TTL_DAY = 86400  # 24 hours

    @staticmethod
    async def get(key: str) -> Optional[Any]:
        """Return the decoded JSON value, or None on miss/error."""
        try:
            client = await get_redis()
            value = await client.get(key)

            if value is None:
                return None

            return json.loads(value)
        except Exception as e:
            logger.warning("Cache get error for key %s: %s", key, e)
            return None

    @staticmethod
    async def set(
        key: str,
        value: Any,
        ttl: int = TTL_SHORT,
    ) -> bool:
        """
        Set value in cache with TTL.

        Args:
            key: Cache key
            value: Value to cache (JSON serialized, ``default=str``)
            ttl: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        try:
            client = await get_redis()
            await client.setex(key, ttl, json.dumps(value, default=str))
            return True
        except Exception as e:
            logger.warning("Cache set error for key %s: %s", key, e)
            return False

    @staticmethod
    async def delete(key: str) -> bool:
        try:
            client = await get_redis()
            return await client.delete(key) > 0
        except Exception as e:
            logger.warning("Cache delete error for key %s: %s", key, e)
            return False

    @staticmethod
    async def delete_pattern(pattern: str) -> int:
        """
        Delete all keys matching a glob pattern.

        Returns:
            Number of keys deleted
        """
        try:
            client = await get_redis()
            keys = [key async for key in client.scan_iter(match=pattern)]

            if keys:
                return await client.delete(*keys)
            return 0
        except Exception as e:
            logger.warning("Cache delete pattern error for %s: %s", pattern, e)
            return 0

    @staticmethod
    async def exists(key: str) -> bool:
        try:
            client = await get_redis()
            return await client.exists(key) > 0
        except Exception as e:
            logger.warning("Cache exists error for key %s: %s", key, e)
            return False

    @staticmethod
    async def increment(key: str, amount: int = 1) -> Optional[int]:
        """Increment a counter, returning the new value or None on error."""
        try:
            client = await get_redis()
            return await client.incrby(key, amount)
        except Exception as e:
            logger.warning("Cache increment error for key %s: %s", key, e)
            return None


# =============================================================================
# Cache Key Builders
# =============================================================================

def params_hash(params: dict[str, Any]) -> str:
    """Stable short hash of a query-parameter dict."""
    encoded = json.dumps(params, sort_keys=True, default=str)
    return hashlib.sha1(encoded.encode("utf-8")).hexdigest()[:16]


class CacheKeys:
    """Cache key builders for consistent naming."""

    @staticmethod
    def user_auth(user_id: str) -> str:
        """Cached user lookup used by the auth dependency."""
        return f"cache:user:auth:{user_id}"

    @staticmethod
    def profile(user_id: str) -> str:
        return f"cache:profile:{user_id}"

    @staticmethod
    def analytics(kind: str, user_id: str, params: dict[str, Any]) -> str:
        """Analytics payload for one (kind, user, parameter set)."""
        return f"cache:analytics:{kind}:{user_id}:{params_hash(params)}"

    @staticmethod
    def analytics_pattern(user_id: str, kind: str = "*") -> str:
        return f"cache:analytics:{kind}:{user_id}:*"

    @staticmethod
    def lunar_calendar(start: str, end: str) -> str:
        return f"cache:lunar:{start}:{end}"

    @staticmethod
    def weather(latitude: float, longitude: float) -> str:
        # Two decimals is roughly 1 km; nearby lookups share an entry
        return f"cache:weather:{latitude:.2f}:{longitude:.2f}"

    @staticmethod
    def stripe_event(event_id: str) -> str:
        """Idempotency marker for a processed Stripe webhook event."""
        return f"webhook:stripe:event:{event_id}"


# =============================================================================
# Cache Invalidation Helpers
# =============================================================================

class CacheInvalidator:
    """Helpers for invalidating related cache entries."""

    @staticmethod
    async def on_profile_update(user_id: str) -> None:
        await CacheManager.delete(CacheKeys.profile(user_id))
        await CacheManager.delete(CacheKeys.user_auth(user_id))

    @staticmethod
    async def on_payment_change(user_id: str) -> None:
        """Payment writes change payment and earnings dashboards."""
        await CacheManager.delete_pattern(CacheKeys.analytics_pattern(user_id, "payments"))
        await CacheManager.delete_pattern(CacheKeys.analytics_pattern(user_id, "earnings"))

    @staticmethod
    async def on_review_change(user_id: str) -> None:
        await CacheManager.delete_pattern(CacheKeys.analytics_pattern(user_id, "reviews"))
        await CacheManager.delete(CacheKeys.profile(user_id))

    @staticmethod
    async def on_approval_change(user_id: str) -> None:
        """Approval decisions move reliability, which the profile shows."""
        await CacheManager.delete(CacheKeys.profile(user_id))
        await CacheManager.delete(CacheKeys.user_auth(user_id))

    @staticmethod
    async def on_subscription_change(user_id: str) -> None:
        await CacheManager.delete(CacheKeys.profile(user_id))
        await CacheManager.delete(CacheKeys.user_auth(user_id))
        await CacheManager.delete_pattern(CacheKeys.analytics_pattern(user_id))
