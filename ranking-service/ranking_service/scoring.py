"""
Scoring primitives for feed ranking and friend suggestions

Everything here is a pure function of its arguments. Callers pass the
current time in explicitly.
"""
from datetime import datetime, timedelta
from difflib import SequenceMatcher
from typing import AbstractSet, Dict, Iterable, List, Mapping, Optional
import math
import re

from .domain.models import ContentItem, UserProfile, Visibility

HASHTAG_PATTERN = re.compile(r"#([a-zA-Z0-9_]+)")

MAJOR_EDIT_THRESHOLD = 30.0

SUGGESTION_WEIGHTS: Dict[str, float] = {
    "mutual_connections": 0.40,
    "profile_completeness": 0.15,
    "activity_level": 0.15,
    "interest_similarity": 0.15,
    "location_proximity": 0.10,
    "recency_boost": 0.05,
}


# Feed scores
def hours_since(moment: datetime, now: datetime) -> int:
    """Whole hours elapsed, truncated"""
    return int((now - moment).total_seconds() // 3600)


def engagement_score(
    item: ContentItem,
    now: datetime,
    friend_ids: AbstractSet[int] = frozenset(),
    preferred_types: Iterable[str] = (),
    recent_hours: int = 6,
) -> float:
    """
    Recency-decayed engagement score for the algorithmic feed.

    Weighted interaction counters plus affinity bonuses, divided by the
    post's age in hours (at least 1).
    """
    score = (
        item.likes_count * 2
        + item.comments_count * 3
        + item.shares_count * 4
        + item.views_count * 0.1
    )
    if item.user_id in friend_ids:
        score += 10
    if item.visibility == Visibility.PUBLIC:
        score += 2
    if item.created_at > now - timedelta(hours=recent_hours):
        score += 5
    if item.type in preferred_types:
        score += 3
    return score / max(hours_since(item.created_at, now), 1)


def trending_score(item: ContentItem) -> float:
    """Popularity score for the trending feed"""
    return (
        item.likes_count * 1.5
        + item.comments_count * 2
        + item.shares_count * 3
        + item.views_count * 0.05
    )


def passes_trending_threshold(score: float, threshold: float = 5.0) -> bool:
    """Trending only keeps items strictly above the threshold"""
    return score > threshold


# Set and text similarity
def jaccard_similarity(a: Iterable, b: Iterable) -> float:
    """|A ∩ B| / |A ∪ B|, 0 when both sets are empty"""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def preferential_attachment_score(friend_count: int) -> float:
    """ln(friend_count + 1)"""
    return math.log(friend_count + 1)


def is_popular(friend_count: int, min_friends: int = 10) -> bool:
    """Preferential attachment only considers users above the popularity floor"""
    return friend_count > min_friends


def similarity_percentage(text_a: str, text_b: str) -> float:
    """Character-level similarity of two strings, 0..100"""
    if text_a == text_b:
        return 100.0
    ratio = SequenceMatcher(None, text_a, text_b, autojunk=False).ratio()
    return round(ratio * 100, 2)


def is_major_edit(old_text: str, new_text: str, threshold: float = MAJOR_EDIT_THRESHOLD) -> bool:
    """An edit is major when at least `threshold` points of similarity changed"""
    return (100 - similarity_percentage(old_text, new_text)) >= threshold


def extract_hashtags(content: Optional[str]) -> List[str]:
    """Extract hashtags without the leading '#'"""
    if not content:
        return []
    return HASHTAG_PATTERN.findall(content)


# Suggestion sub-scores, each in [0, 1]
def mutual_connections_score(mutual_count: int) -> float:
    return min(mutual_count / 10, 1.0)


def profile_completeness_score(profile: UserProfile) -> float:
    return profile.completeness


def activity_level_score(profile: UserProfile, now: datetime) -> float:
    last_activity = profile.last_activity_at or profile.created_at
    days = max((now - last_activity).days, 0)
    return max(0.0, 1 - days / 30)


def interest_similarity_score(viewer: UserProfile, suggested: UserProfile) -> float:
    if not viewer.favorite_genres or not suggested.favorite_genres:
        return 0.0
    return jaccard_similarity(viewer.favorite_genres, suggested.favorite_genres)


def location_proximity_score(viewer: UserProfile, suggested: UserProfile) -> float:
    if not viewer.location or not suggested.location:
        return 0.0
    mine = viewer.location.lower()
    theirs = suggested.location.lower()
    if mine == theirs:
        return 1.0
    if mine in theirs or theirs in mine:
        return 0.7
    return 0.0


def recency_boost_score(profile: UserProfile, now: datetime) -> float:
    return 0.1 if (now - profile.created_at).days <= 30 else 0.0


def composite_suggestion_score(
    subscores: Mapping[str, float],
    weights: Mapping[str, float] = SUGGESTION_WEIGHTS,
) -> float:
    """Weighted sum of sub-scores"""
    return sum(subscores.get(name, 0.0) * weight for name, weight in weights.items())


def suggestion_subscores(
    mutual_count: int,
    viewer: UserProfile,
    suggested: UserProfile,
    now: datetime,
) -> Dict[str, float]:
    """Compute every suggestion sub-score for a candidate"""
    return {
        "mutual_connections": mutual_connections_score(mutual_count),
        "profile_completeness": profile_completeness_score(suggested),
        "activity_level": activity_level_score(suggested, now),
        "interest_similarity": interest_similarity_score(viewer, suggested),
        "location_proximity": location_proximity_score(viewer, suggested),
        "recency_boost": recency_boost_score(suggested, now),
    }
