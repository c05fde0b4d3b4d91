"""
Domain models - Core business entities
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional
from enum import Enum


class Visibility(str, Enum):
    """Content visibility"""
    PUBLIC = "public"
    FRIENDS = "friends"
    CLOSE_FRIENDS = "close_friends"
    FRIENDS_OF_FRIENDS = "friends_of_friends"
    GROUP = "group"
    PRIVATE = "private"
    CUSTOM = "custom"


class FriendshipStatus(str, Enum):
    """Friendship relationship status"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    BLOCKED = "blocked"
    DECLINED = "declined"


class FeedType(str, Enum):
    """Feed ranking strategy"""
    CHRONOLOGICAL = "chronological"
    ALGORITHMIC = "algorithmic"
    FOLLOWING = "following"
    TRENDING = "trending"
    DISCOVER = "discover"
    BOOKMARKS = "bookmarks"


class Period(str, Enum):
    """Publication period for the chronological feed"""
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


class SuggestionAlgorithm(str, Enum):
    """Friend suggestion algorithm"""
    MUTUAL_CONNECTIONS = "mutual_connections"
    FRIENDS_OF_FRIENDS = "friends_of_friends"
    NETWORK_ANALYSIS = "network_analysis"
    HYBRID = "hybrid"


class PostOrder(str, Enum):
    """Ordering applied when a content pool is sampled"""
    NEWEST = "newest"
    MOST_LIKED = "most_liked"


@dataclass
class ContentItem:
    """Post domain model"""
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
    tags: List[str] = field(default_factory=list)
    has_media: bool = False
    is_hidden: bool = False
    is_reported: bool = False
    group_id: Optional[int] = None

    @property
    def timestamp(self) -> datetime:
        """Publication time, falling back to creation time"""
        return self.published_at or self.created_at

    @property
    def total_engagement(self) -> int:
        return self.likes_count + self.comments_count + self.shares_count

    @property
    def is_flagged(self) -> bool:
        return self.is_hidden or self.is_reported

    def is_visible_to(self, viewer_id: Optional[int], is_admin: bool = False) -> bool:
        """Hidden or reported posts are only visible to admins and their owner"""
        if not self.is_flagged:
            return True
        return is_admin or self.user_id == viewer_id


@dataclass
class SocialEdge:
    """Friendship or follow edge between two users"""
    user_id: int
    other_id: int
    status: Optional[FriendshipStatus] = None
    is_follow: bool = False
    is_muted: bool = False
    is_close_friend: bool = False

    def is_active(self) -> bool:
        """Check if the edge contributes to ranking signals"""
        if self.is_follow:
            return not self.is_muted
        return self.status == FriendshipStatus.ACCEPTED

    def other(self, user_id: int) -> int:
        return self.other_id if self.user_id == user_id else self.user_id


@dataclass
class UserProfile:
    """User with profile fields used by ranking"""
    id: int
    name: str
    username: str
    created_at: datetime
    avatar_url: Optional[str] = None
    is_verified: bool = False
    is_admin: bool = False
    bio: Optional[str] = None
    location: Optional[str] = None
    favorite_genres: List[str] = field(default_factory=list)
    favorite_authors: List[str] = field(default_factory=list)
    reading_goals: Optional[Dict] = None
    allow_friend_requests: bool = True
    is_private_profile: bool = False
    show_algorithmic_feed: bool = False
    last_activity_at: Optional[datetime] = None

    @property
    def accepts_suggestions(self) -> bool:
        """Check if the user may be suggested to others"""
        return self.allow_friend_requests and not self.is_private_profile

    @property
    def completeness(self) -> float:
        """Profile completeness in 0.2 steps"""
        filled = [
            self.bio,
            self.avatar_url,
            self.location,
            self.favorite_genres,
            self.reading_goals,
        ]
        return round(sum(0.2 for value in filled if value), 10)


@dataclass
class RankedResult:
    """Ranked feed item, only alive for one ranking call"""
    item: ContentItem
    score: float
    strategy: FeedType


@dataclass
class Cursor:
    """Position in a ranked sequence"""
    id: int
    timestamp: float
    score: float


@dataclass
class SuggestionCandidate:
    """Friend suggestion candidate"""
    user_id: int
    mutual_friends_count: int = 0
    mutual_friend_ids: List[int] = field(default_factory=list)
    degree_of_separation: Optional[int] = None
    common_neighbors: Optional[int] = None
    # Raw algorithm scores
    score: Optional[float] = None
    composite_score: Optional[float] = None
    algorithm_count: Optional[int] = None
    final_score: Optional[float] = None
    algorithm_coverage: Optional[int] = None
    algorithm: Optional[str] = None
    weighted_score: Optional[float] = None
    # Enrichment
    scores: Dict[str, float] = field(default_factory=dict)
    total_score: float = 0.0
    name: Optional[str] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    is_verified: bool = False
    suggestion_reason: Optional[str] = None

    def algorithm_score(self) -> float:
        """Score contributed to the hybrid ranking"""
        if self.composite_score is not None:
            return self.composite_score
        if self.score is not None:
            return self.score
        return self.total_score


@dataclass
class PostQuery:
    """
    Content pool selection

    The SQL repository translates this into a WHERE clause; matches() is
    the equivalent predicate for a single post.
    """
    viewer_id: Optional[int] = None
    viewer_is_admin: bool = False
    author_ids: Optional[FrozenSet[int]] = None
    exclude_author_ids: FrozenSet[int] = frozenset()
    include_public: bool = False
    visibility: Optional[Visibility] = None
    created_after: Optional[datetime] = None
    published_after: Optional[datetime] = None
    interests: List[str] = field(default_factory=list)
    min_likes: Optional[int] = None
    order: PostOrder = PostOrder.NEWEST
    limit: int = 100

    def matches(self, item: ContentItem, now: datetime) -> bool:
        """Check if a post belongs to the pool"""
        if not item.is_visible_to(self.viewer_id, self.viewer_is_admin):
            return False
        if item.published_at is not None and item.published_at > now:
            return False
        if self.author_ids is not None:
            in_authors = item.user_id in self.author_ids
            if self.include_public:
                in_authors = in_authors or item.visibility == Visibility.PUBLIC
            if not in_authors:
                return False
        if item.user_id in self.exclude_author_ids:
            return False
        if self.visibility is not None and item.visibility != self.visibility:
            return False
        if self.created_after is not None and item.created_at < self.created_after:
            return False
        if self.published_after is not None and (
            item.published_at is None or item.published_at < self.published_after
        ):
            return False
        if self.min_likes is not None and not self._matches_interest_or_popular(item):
            return False
        return True

    def _matches_interest_or_popular(self, item: ContentItem) -> bool:
        if item.likes_count >= self.min_likes:
            return True
        content = item.content.lower()
        for interest in self.interests:
            if interest.lower() in content or interest in item.tags:
                return True
        return False
