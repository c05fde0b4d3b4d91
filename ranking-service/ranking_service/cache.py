"""
Redis caching layer for Ranking Service

Every read fails open: an unreachable Redis or an undecodable payload is
logged and reported as a miss so the caller recomputes.
"""
import redis.asyncio as redis
from redis.exceptions import RedisError
from pydantic import ValidationError
from typing import Optional, List, Any
import hashlib
import json
import logging

from .config import settings
from .domain.models import RankedResult
from .schemas import FeedFilters, FeedItem

logger = logging.getLogger(__name__)

FEED_PREFIX = "feed:"
FEED_STATS_PREFIX = "feed_stats:"
SUGGESTIONS_PREFIX = "friend_suggestions:"


def _digest(value: Any) -> str:
    """md5 of the canonical JSON form of a value"""
    canonical = json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()


def filter_fingerprint(filters: Optional[FeedFilters]) -> str:
    """Hash of a filter set; list order does not matter"""
    if filters is None:
        return _digest({})
    data = filters.model_dump(mode="json", exclude_none=True)
    for key, value in data.items():
        if isinstance(value, list):
            data[key] = sorted(value, key=str)
    return _digest(data)


def feed_key(user_id: int, feed_type: str, period: Optional[str], filters: Optional[FeedFilters]) -> str:
    """Generate cache key for a ranked feed"""
    key_data = {
        "user_id": user_id,
        "type": getattr(feed_type, "value", feed_type),
        "period": getattr(period, "value", period) or "all",
        "filters": filter_fingerprint(filters),
    }
    return f"{FEED_PREFIX}{user_id}:{_digest(key_data)}"


def feed_stats_key(user_id: int, feed_type: str) -> str:
    """Generate cache key for feed statistics"""
    return f"{FEED_STATS_PREFIX}{user_id}:{getattr(feed_type, 'value', feed_type)}"


def suggestions_key(user_id: int, options: dict) -> str:
    """Generate cache key for friend suggestions"""
    return f"{SUGGESTIONS_PREFIX}{user_id}:{_digest(options)}"


def friend_ids_key(user_id: int) -> str:
    return f"user:{user_id}:friend_ids"


def following_ids_key(user_id: int) -> str:
    return f"user:{user_id}:following_ids"


class RedisCache:
    """Redis cache manager for ranked feeds, adjacency and suggestions"""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.redis: Optional[redis.Redis] = client

    async def connect(self):
        """Connect to Redis"""
        if not settings.REDIS_ENABLED:
            logger.info("Redis caching is disabled")
            return

        try:
            self.redis = await redis.from_url(
                f"redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}",
                password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
                encoding="utf-8",
                decode_responses=True,
            )
            # Test connection
            await self.redis.ping()
            logger.info("Connected to Redis successfully")
        except (RedisError, OSError) as e:
            logger.warning(f"Failed to connect to Redis: {e}. Continuing without cache.")
            self.redis = None

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.aclose()
            logger.info("Disconnected from Redis")

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        if not self.redis:
            return None

        try:
            value = await self.redis.get(key)
            if value:
                return json.loads(value)
            return None
        except RedisError as e:
            logger.error(f"Error getting cache key {key}: {e}")
            return None
        except ValueError as e:
            logger.error(f"Undecodable cache payload for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 300):
        """Set value in cache with TTL"""
        if not self.redis:
            return

        try:
            await self.redis.setex(key, ttl, json.dumps(value, default=str))
        except RedisError as e:
            logger.error(f"Error setting cache key {key}: {e}")

    async def delete(self, key: str):
        """Delete key from cache"""
        if not self.redis:
            return

        try:
            await self.redis.delete(key)
        except RedisError as e:
            logger.error(f"Error deleting cache key {key}: {e}")

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching pattern"""
        if not self.redis:
            return 0

        try:
            keys = []
            async for key in self.redis.scan_iter(match=pattern):
                keys.append(key)

            if keys:
                await self.redis.delete(*keys)
                logger.info(f"Deleted {len(keys)} keys matching pattern {pattern}")
            return len(keys)
        except RedisError as e:
            logger.error(f"Error deleting cache pattern {pattern}: {e}")
            return 0

    # Feed-specific cache methods
    async def get_ranked_feed(self, key: str) -> Optional[List[RankedResult]]:
        """Get a cached ranked feed"""
        payload = await self.get(key)
        if payload is None:
            return None

        try:
            return [FeedItem.model_validate(entry).to_ranked() for entry in payload]
        except (ValidationError, TypeError) as e:
            logger.error(f"Discarding malformed cached feed {key}: {e}")
            return None

    async def set_ranked_feed(self, key: str, ranked: List[RankedResult], ttl: int):
        """Cache a ranked feed"""
        payload = [FeedItem.from_ranked(result).model_dump(mode="json") for result in ranked]
        await self.set(key, payload, ttl)

    async def invalidate_user_feeds(self, user_id: int) -> int:
        """Invalidate ranked feeds, adjacency and stats for a user"""
        deleted = 0
        for pattern in (
            f"{FEED_PREFIX}{user_id}:*",
            f"user:{user_id}:*",
            f"{FEED_STATS_PREFIX}{user_id}:*",
        ):
            deleted += await self.delete_pattern(pattern)
        return deleted

    async def invalidate_user_suggestions(self, user_id: int) -> int:
        """Invalidate friend suggestions for a user"""
        return await self.delete_pattern(f"{SUGGESTIONS_PREFIX}{user_id}:*")


# Global cache instance
cache = RedisCache()


async def get_cache() -> RedisCache:
    """Dependency for getting cache instance"""
    return cache
