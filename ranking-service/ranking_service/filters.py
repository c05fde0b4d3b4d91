"""
Post-ranking feed filters
"""
from typing import List

from .domain.models import RankedResult
from .schemas import FeedFilters
from .scoring import extract_hashtags


def _matches(result: RankedResult, filters: FeedFilters) -> bool:
    item = result.item

    if filters.content_types and item.type not in filters.content_types:
        return False

    if filters.has_media is not None and item.has_media != filters.has_media:
        return False

    if filters.date_from is not None and item.timestamp < filters.date_from:
        return False

    if filters.date_to is not None and item.timestamp > filters.date_to:
        return False

    if filters.min_engagement is not None and item.total_engagement < filters.min_engagement:
        return False

    if filters.exclude_authors and item.user_id in filters.exclude_authors:
        return False

    if filters.hashtags:
        if not set(filters.hashtags) & set(extract_hashtags(item.content)):
            return False

    return True


def apply_filters(ranked: List[RankedResult], filters: FeedFilters) -> List[RankedResult]:
    """Drop ranked items that fail any filter; order and scores are kept"""
    if filters is None or filters.is_empty():
        return list(ranked)
    return [result for result in ranked if _matches(result, filters)]
