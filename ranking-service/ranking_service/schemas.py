"""
Pydantic schemas for Ranking Service options, responses and cache payloads
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone

from .config import settings
from .domain.models import (
    ContentItem,
    FeedType,
    Period,
    RankedResult,
    SuggestionAlgorithm,
    SuggestionCandidate,
    Visibility,
)


# Feed options
class FeedFilters(BaseModel):
    """Post-ranking feed filters"""
    content_types: Optional[List[str]] = None
    has_media: Optional[bool] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_engagement: Optional[int] = Field(None, ge=0)
    exclude_authors: Optional[List[int]] = None
    hashtags: Optional[List[str]] = None

    @field_validator("date_from", "date_to")
    @classmethod
    def assume_utc(cls, v):
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class FeedOptions(BaseModel):
    """Feed generation options"""
    type: FeedType = FeedType.CHRONOLOGICAL
    per_page: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1)
    cursor: Optional[str] = None
    filters: FeedFilters = Field(default_factory=FeedFilters)
    period: Optional[Period] = None
    bypass_cache: bool = False
    trending_hours: Optional[int] = Field(None, ge=1, le=168)
    sample_size: Optional[int] = Field(None, ge=100, le=2000)

    @field_validator("per_page")
    @classmethod
    def clamp_per_page(cls, v):
        return min(v, settings.MAX_PAGE_SIZE)


# Feed responses
class FeedItem(BaseModel):
    """Ranked feed item, also the cached representation"""
    id: int
    user_id: int
    content: str
    type: str
    visibility: Visibility
    created_at: datetime
    published_at: Optional[datetime] = None
    likes_count: int = 0
    comments_count: int = 0
    shares_count: int = 0
    views_count: int = 0
    tags: List[str] = []
    has_media: bool = False
    is_hidden: bool = False
    is_reported: bool = False
    group_id: Optional[int] = None
    score: float
    strategy: FeedType

    @classmethod
    def from_ranked(cls, ranked: RankedResult) -> "FeedItem":
        item = ranked.item
        return cls(
            id=item.id,
            user_id=item.user_id,
            content=item.content,
            type=item.type,
            visibility=item.visibility,
            created_at=item.created_at,
            published_at=item.published_at,
            likes_count=item.likes_count,
            comments_count=item.comments_count,
            shares_count=item.shares_count,
            views_count=item.views_count,
            tags=list(item.tags),
            has_media=item.has_media,
            is_hidden=item.is_hidden,
            is_reported=item.is_reported,
            group_id=item.group_id,
            score=ranked.score,
            strategy=ranked.strategy,
        )

    def to_ranked(self) -> RankedResult:
        data = self.model_dump(exclude={"score", "strategy"})
        return RankedResult(item=ContentItem(**data), score=self.score, strategy=self.strategy)


class PaginationInfo(BaseModel):
    """Cursor pagination envelope"""
    has_more: bool
    next_cursor: Optional[str] = None
    count: int
    total_available: int


class FeedResponse(BaseModel):
    """Feed page with pagination"""
    items: List[FeedItem]
    pagination: PaginationInfo


class FeedTypeInfo(BaseModel):
    """Feed type catalogue entry"""
    key: FeedType
    name: str
    description: str
    cache_ttl: int


class FeedStatsResponse(BaseModel):
    """Feed statistics"""
    user_id: int
    feed_type: FeedType
    total_posts: int
    content_type_breakdown: Dict[str, int]
    average_engagement: Optional[float] = None
    friends_posts_count: int
    public_posts_count: int
    generated_at: datetime


# Suggestion options
class SuggestionOptions(BaseModel):
    """Friend suggestion options"""
    count: int = Field(settings.DEFAULT_SUGGESTION_COUNT, ge=1)
    algorithm: SuggestionAlgorithm = SuggestionAlgorithm.MUTUAL_CONNECTIONS
    include_scores: bool = False
    min_score: float = Field(settings.DEFAULT_MIN_SCORE, ge=0.0, le=1.0)
    min_mutual_friends: int = Field(settings.DEFAULT_MIN_MUTUAL_FRIENDS, ge=0)
    use_cache: bool = True

    @field_validator("count")
    @classmethod
    def clamp_count(cls, v):
        return min(v, settings.MAX_SUGGESTIONS)


# Suggestion responses
class SuggestionResponse(BaseModel):
    """Friend suggestion, also the cached representation"""
    user_id: int
    name: Optional[str] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    is_verified: bool = False
    mutual_friends_count: int = 0
    degree_of_separation: Optional[int] = None
    suggestion_reason: str
    confidence_score: float
    composite_score: Optional[float] = None
    algorithm_count: Optional[int] = None
    final_score: Optional[float] = None
    algorithm_coverage: Optional[int] = None
    scores: Optional[Dict[str, float]] = None
    mutual_friend_ids: Optional[List[int]] = None
    created_at: datetime

    @classmethod
    def from_candidate(
        cls,
        candidate: SuggestionCandidate,
        include_scores: bool,
        created_at: datetime,
    ) -> "SuggestionResponse":
        response = cls(
            user_id=candidate.user_id,
            name=candidate.name,
            username=candidate.username,
            avatar_url=candidate.avatar_url,
            is_verified=candidate.is_verified,
            mutual_friends_count=candidate.mutual_friends_count,
            degree_of_separation=candidate.degree_of_separation,
            suggestion_reason=candidate.suggestion_reason or "Suggested for you",
            confidence_score=candidate.total_score,
            composite_score=candidate.composite_score,
            algorithm_count=candidate.algorithm_count,
            final_score=candidate.final_score,
            algorithm_coverage=candidate.algorithm_coverage,
            created_at=created_at,
        )
        if include_scores:
            response.scores = dict(candidate.scores, total_score=candidate.total_score)
            response.mutual_friend_ids = list(candidate.mutual_friend_ids)
        return response


class SuggestionAnalytics(BaseModel):
    """Suggestion analytics for a user"""
    total_friends: int
    suggestion_pool_size: int
    network_density: float
    avg_mutual_friends: float
    last_updated: datetime


# Kafka event schemas
class PostEvent(BaseModel):
    """Post created/deleted event from Kafka"""
    event_type: str
    post_id: Any
    user_id: int


class RelationshipEvent(BaseModel):
    """Friendship or follow event from Kafka"""
    event_type: str
    user_id: Optional[int] = None
    friend_id: Optional[int] = None
    follower_id: Optional[int] = None
    following_id: Optional[int] = None

    def affected_user_ids(self) -> List[int]:
        ids = [self.user_id, self.friend_id, self.follower_id, self.following_id]
        return [user_id for user_id in ids if user_id is not None]
