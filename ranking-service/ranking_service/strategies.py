"""
Feed ranking strategies

Each strategy selects a content pool, scores it, sorts it and caps it at
FEED_POOL_CAP items. STRATEGIES maps every FeedType to its strategy.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from random import Random
from typing import Dict, List, Optional, Set
import logging

from .config import settings
from .domain.models import (
    ContentItem,
    FeedType,
    Period,
    PostOrder,
    PostQuery,
    RankedResult,
    UserProfile,
    Visibility,
)
from .domain.repositories import IContentRepository
from .graph import GraphAccess
from .schemas import FeedOptions
from .scoring import (
    engagement_score,
    extract_hashtags,
    passes_trending_threshold,
    trending_score,
)

logger = logging.getLogger(__name__)


@dataclass
class FeedContext:
    """Everything one ranking call needs"""
    viewer: UserProfile
    options: FeedOptions
    now: datetime
    rng: Random
    graph: GraphAccess
    content: IContentRepository
    friend_ids: Set[int] = field(default_factory=set)

    def base_query(self, **kwargs) -> PostQuery:
        return PostQuery(
            viewer_id=self.viewer.id,
            viewer_is_admin=self.viewer.is_admin,
            **kwargs
        )


def period_start(period: Optional[Period], now: datetime) -> Optional[datetime]:
    """Lower publication bound for a period; None means unbounded"""
    if period is None or period == Period.ALL:
        return None

    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == Period.TODAY:
        return start_of_day
    if period == Period.WEEK:
        return start_of_day - timedelta(days=start_of_day.weekday())
    if period == Period.MONTH:
        return start_of_day.replace(day=1)
    if period == Period.YEAR:
        return start_of_day.replace(month=1, day=1)
    return None


class FeedStrategy:
    """Base strategy: select_pool -> score -> sort -> cap"""

    feed_type: FeedType

    async def run(self, ctx: FeedContext) -> List[RankedResult]:
        pool = await self.select_pool(ctx)
        ranked = self.score(pool, ctx)
        ranked = self.sort(ranked)
        return ranked[:settings.FEED_POOL_CAP]

    async def select_pool(self, ctx: FeedContext) -> List[ContentItem]:
        raise NotImplementedError

    def score(self, pool: List[ContentItem], ctx: FeedContext) -> List[RankedResult]:
        """Unscored strategies rank by timestamp"""
        return [
            RankedResult(item=item, score=item.timestamp.timestamp(), strategy=self.feed_type)
            for item in pool
        ]

    def sort(self, ranked: List[RankedResult]) -> List[RankedResult]:
        return sorted(ranked, key=lambda r: (r.score, r.item.timestamp), reverse=True)


class ChronologicalStrategy(FeedStrategy):
    """Own, friends' and public posts, newest first"""

    feed_type = FeedType.CHRONOLOGICAL

    async def select_pool(self, ctx: FeedContext) -> List[ContentItem]:
        friend_ids = await ctx.graph.friend_ids(ctx.viewer.id)
        query = ctx.base_query(
            author_ids=frozenset(friend_ids | {ctx.viewer.id}),
            include_public=True,
            published_after=period_start(ctx.options.period, ctx.now),
            limit=settings.FEED_POOL_CAP,
        )
        return await ctx.content.find_posts(query, ctx.now)

    def sort(self, ranked: List[RankedResult]) -> List[RankedResult]:
        return sorted(
            ranked,
            key=lambda r: (r.item.timestamp, r.item.created_at),
            reverse=True,
        )


class AlgorithmicStrategy(FeedStrategy):
    """Recent posts ranked by recency-decayed engagement"""

    feed_type = FeedType.ALGORITHMIC

    async def select_pool(self, ctx: FeedContext) -> List[ContentItem]:
        ctx.friend_ids = await ctx.graph.friend_ids(ctx.viewer.id)
        query = ctx.base_query(
            author_ids=frozenset(ctx.friend_ids | {ctx.viewer.id}),
            include_public=True,
            created_after=ctx.now - timedelta(days=settings.ALGORITHMIC_WINDOW_DAYS),
            limit=settings.RANKING_SAMPLE_SIZE,
        )
        return await ctx.content.find_posts(query, ctx.now)

    def score(self, pool: List[ContentItem], ctx: FeedContext) -> List[RankedResult]:
        return [
            RankedResult(
                item=item,
                score=engagement_score(
                    item,
                    ctx.now,
                    ctx.friend_ids,
                    settings.PREFERRED_CONTENT_TYPES,
                    settings.RECENT_POST_HOURS,
                ),
                strategy=self.feed_type,
            )
            for item in pool
        ]


class FollowingStrategy(FeedStrategy):
    """Posts by followed users only"""

    feed_type = FeedType.FOLLOWING

    async def select_pool(self, ctx: FeedContext) -> List[ContentItem]:
        following_ids = await ctx.graph.following_ids(ctx.viewer.id)
        if not following_ids:
            logger.info(f"User {ctx.viewer.id} is not following anyone")
            return []

        query = ctx.base_query(
            author_ids=frozenset(following_ids),
            limit=settings.FEED_POOL_CAP,
        )
        return await ctx.content.find_posts(query, ctx.now)


class TrendingStrategy(FeedStrategy):
    """Popular public posts from the trending window"""

    feed_type = FeedType.TRENDING

    async def select_pool(self, ctx: FeedContext) -> List[ContentItem]:
        hours = ctx.options.trending_hours or settings.TRENDING_HOURS
        query = ctx.base_query(
            visibility=Visibility.PUBLIC,
            created_after=ctx.now - timedelta(hours=hours),
            limit=settings.RANKING_SAMPLE_SIZE,
        )
        return await ctx.content.find_posts(query, ctx.now)

    def score(self, pool: List[ContentItem], ctx: FeedContext) -> List[RankedResult]:
        ranked = []
        for item in pool:
            score = trending_score(item)
            if passes_trending_threshold(score, settings.TRENDING_THRESHOLD):
                ranked.append(RankedResult(item=item, score=score, strategy=self.feed_type))
        return ranked


class DiscoverStrategy(FeedStrategy):
    """
    Public posts from outside the viewer's circle

    The sampled pool is shuffled before the cap, so two uncached runs
    rarely return the same feed.
    """

    feed_type = FeedType.DISCOVER

    def score(self, pool: List[ContentItem], ctx: FeedContext) -> List[RankedResult]:
        return [
            RankedResult(item=item, score=float(item.total_engagement), strategy=self.feed_type)
            for item in pool
        ]

    async def run(self, ctx: FeedContext) -> List[RankedResult]:
        pool = await self.select_pool(ctx)
        ranked = self.score(pool, ctx)
        ctx.rng.shuffle(ranked)
        return ranked[:settings.FEED_POOL_CAP]

    async def select_pool(self, ctx: FeedContext) -> List[ContentItem]:
        friend_ids = await ctx.graph.friend_ids(ctx.viewer.id)
        interests = await self.user_interests(ctx)
        query = ctx.base_query(
            exclude_author_ids=frozenset(friend_ids | {ctx.viewer.id}),
            visibility=Visibility.PUBLIC,
            created_after=ctx.now - timedelta(days=settings.DISCOVER_WINDOW_DAYS),
            interests=interests,
            min_likes=settings.DISCOVER_MIN_LIKES,
            order=PostOrder.MOST_LIKED,
            limit=ctx.options.sample_size or settings.DISCOVER_SAMPLE_SIZE,
        )
        return await ctx.content.find_posts(query, ctx.now)

    async def user_interests(self, ctx: FeedContext) -> List[str]:
        """Favorite genres and authors plus hashtags from recently liked posts"""
        interests = list(ctx.viewer.favorite_genres) + list(ctx.viewer.favorite_authors)

        liked = await ctx.content.get_liked_contents(
            ctx.viewer.id,
            ctx.now - timedelta(days=settings.INTEREST_LOOKBACK_DAYS),
            settings.INTEREST_SAMPLE_SIZE,
        )
        for content in liked:
            interests.extend(extract_hashtags(content))

        # Deduplicate, keeping first occurrence
        return list(dict.fromkeys(interest for interest in interests if interest))


class BookmarksStrategy(FeedStrategy):
    """No bookmark store backs this feed; it is always empty"""

    feed_type = FeedType.BOOKMARKS

    async def select_pool(self, ctx: FeedContext) -> List[ContentItem]:
        return []


STRATEGIES: Dict[FeedType, FeedStrategy] = {
    FeedType.CHRONOLOGICAL: ChronologicalStrategy(),
    FeedType.ALGORITHMIC: AlgorithmicStrategy(),
    FeedType.FOLLOWING: FollowingStrategy(),
    FeedType.TRENDING: TrendingStrategy(),
    FeedType.DISCOVER: DiscoverStrategy(),
    FeedType.BOOKMARKS: BookmarksStrategy(),
}
