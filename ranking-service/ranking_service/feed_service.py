"""
Feed Service - Core business logic
"""
from datetime import datetime, timezone
from random import Random
from typing import Any, Callable, Dict, List, Optional, Union
import logging

from .cache import RedisCache, feed_key, feed_stats_key
from .config import settings
from .domain.models import FeedType, RankedResult, UserProfile, Visibility
from .domain.repositories import IContentRepository, IGraphRepository
from .filters import apply_filters
from .graph import GraphAccess
from .pagination import paginate
from .schemas import FeedOptions, FeedResponse, FeedStatsResponse, FeedTypeInfo
from .strategies import STRATEGIES, FeedContext

logger = logging.getLogger(__name__)

FEED_TYPES: Dict[FeedType, Dict[str, str]] = {
    FeedType.CHRONOLOGICAL: {"name": "Chronological", "description": "Latest posts first"},
    FeedType.ALGORITHMIC: {"name": "For You", "description": "Personalized based on your interests"},
    FeedType.FOLLOWING: {"name": "Following", "description": "Posts from people you follow"},
    FeedType.TRENDING: {"name": "Trending", "description": "Popular posts right now"},
    FeedType.DISCOVER: {"name": "Discover", "description": "New content you might like"},
    FeedType.BOOKMARKS: {"name": "Bookmarks", "description": "Your saved posts"},
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FeedService:
    """Feed service with per-type ranking strategies and cached ranked sequences"""

    def __init__(
        self,
        content_repository: IContentRepository,
        graph_repository: IGraphRepository,
        cache: RedisCache,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[Random] = None,
    ):
        self.content_repository = content_repository
        self.graph_repository = graph_repository
        self.cache = cache
        self.clock = clock or utc_now
        self.rng = rng or Random()

    async def generate_feed(
        self,
        user: UserProfile,
        options: Union[FeedOptions, Dict[str, Any], None] = None,
    ) -> FeedResponse:
        """
        Generate one page of a user's feed

        Args:
            user: Viewer
            options: FeedOptions or a plain dict of the same fields

        Returns:
            FeedResponse with items and pagination

        Raises:
            pydantic.ValidationError: Unknown feed type, period or bad option values
            GraphStoreUnavailable: The content or graph store could not be queried
        """
        if not isinstance(options, FeedOptions):
            options = FeedOptions.model_validate(options or {})

        ranked = await self._ranked_feed(user, options)
        return paginate(ranked, options.cursor, options.per_page)

    async def _ranked_feed(self, user: UserProfile, options: FeedOptions) -> List[RankedResult]:
        """Get the ranked and filtered sequence, from cache or freshly computed"""
        cache_key = feed_key(user.id, options.type, options.period, options.filters)

        if not options.bypass_cache:
            cached = await self.cache.get_ranked_feed(cache_key)
            if cached is not None:
                logger.info(f"Cache hit for user {user.id}'s {options.type.value} feed")
                return cached

        ranked = await self._compute(user, options)
        ranked = apply_filters(ranked, options.filters)

        if not options.bypass_cache:
            await self.cache.set_ranked_feed(
                cache_key, ranked, settings.feed_cache_ttl(options.type)
            )
        return ranked

    async def _compute(self, user: UserProfile, options: FeedOptions) -> List[RankedResult]:
        """Run the strategy for the requested feed type"""
        strategy = STRATEGIES[options.type]
        ctx = FeedContext(
            viewer=user,
            options=options,
            now=self.clock(),
            rng=self.rng,
            graph=GraphAccess(self.graph_repository, self.cache),
            content=self.content_repository,
        )
        ranked = await strategy.run(ctx)
        logger.info(f"Ranked {len(ranked)} items for user {user.id}'s {options.type.value} feed")
        return ranked

    async def get_feed_stats(
        self,
        user: UserProfile,
        feed_type: Union[FeedType, str] = FeedType.CHRONOLOGICAL,
    ) -> FeedStatsResponse:
        """Get statistics over a freshly ranked feed"""
        feed_type = FeedType(feed_type)
        cache_key = feed_stats_key(user.id, feed_type)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            try:
                return FeedStatsResponse.model_validate(cached)
            except ValueError as e:
                logger.error(f"Discarding malformed cached stats {cache_key}: {e}")

        options = FeedOptions(type=feed_type, bypass_cache=True)
        ranked = await self._ranked_feed(user, options)
        friend_ids = await GraphAccess(self.graph_repository, self.cache).friend_ids(user.id)

        breakdown: Dict[str, int] = {}
        for result in ranked:
            breakdown[result.item.type] = breakdown.get(result.item.type, 0) + 1

        average_engagement = None
        if ranked:
            average_engagement = sum(r.item.total_engagement for r in ranked) / len(ranked)

        stats = FeedStatsResponse(
            user_id=user.id,
            feed_type=feed_type,
            total_posts=len(ranked),
            content_type_breakdown=breakdown,
            average_engagement=average_engagement,
            friends_posts_count=sum(1 for r in ranked if r.item.user_id in friend_ids),
            public_posts_count=sum(1 for r in ranked if r.item.visibility == Visibility.PUBLIC),
            generated_at=self.clock(),
        )
        await self.cache.set(cache_key, stats.model_dump(mode="json"), settings.CACHE_TTL_FEED_STATS)
        return stats

    async def invalidate_feed_cache(self, user_id: int) -> int:
        """Drop every cached feed, adjacency list and stats entry of a user"""
        deleted = await self.cache.invalidate_user_feeds(user_id)
        logger.info(f"Invalidated {deleted} cached feed entries for user {user_id}")
        return deleted

    async def warmup_feed_cache(self, user: UserProfile) -> List[FeedType]:
        """
        Generate the first page of every feed type so later reads hit cache

        Returns:
            Feed types that were warmed successfully
        """
        warmed = []
        for feed_type in FEED_TYPES:
            try:
                await self.generate_feed(
                    user, FeedOptions(type=feed_type, per_page=settings.DEFAULT_PAGE_SIZE)
                )
                warmed.append(feed_type)
            except Exception as e:
                logger.error(f"Failed to warm {feed_type.value} feed for user {user.id}: {e}")
        return warmed

    def get_available_feed_types(self, user: Optional[UserProfile]) -> List[FeedTypeInfo]:
        """Feed type catalogue; algorithmic only for users who opted in"""
        available = []
        for feed_type, info in FEED_TYPES.items():
            if feed_type == FeedType.ALGORITHMIC and not (user and user.show_algorithmic_feed):
                continue
            available.append(FeedTypeInfo(
                key=feed_type,
                name=info["name"],
                description=info["description"],
                cache_ttl=settings.feed_cache_ttl(feed_type),
            ))
        return available
