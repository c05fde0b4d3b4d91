"""
Cursor pagination over a ranked feed
"""
from typing import List, Optional
import base64
import binascii
import json
import logging

from .domain.models import Cursor, RankedResult
from .schemas import FeedItem, FeedResponse, PaginationInfo

logger = logging.getLogger(__name__)


def encode_cursor(result: RankedResult) -> str:
    """Encode the position of a ranked item as an opaque token"""
    payload = {
        "id": result.item.id,
        "timestamp": result.item.timestamp.timestamp(),
        "score": result.score,
    }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(token: Optional[str]) -> Optional[Cursor]:
    """
    Decode a cursor token.

    Returns None for a missing, malformed or foreign token; callers then
    start from the beginning of the sequence.
    """
    if not token:
        return None

    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
        data = json.loads(raw.decode("utf-8"))
        return Cursor(
            id=int(data["id"]),
            timestamp=float(data.get("timestamp") or 0),
            score=float(data.get("score") or 0),
        )
    except (binascii.Error, UnicodeError, ValueError, TypeError, KeyError, OverflowError) as e:
        logger.debug(f"Ignoring undecodable cursor: {e}")
        return None


def start_index(ranked: List[RankedResult], cursor: Optional[Cursor]) -> int:
    """Index right after the cursor's item, or 0 when it is no longer present"""
    if cursor is None:
        return 0
    for index, result in enumerate(ranked):
        if result.item.id == cursor.id:
            return index + 1
    return 0


def paginate(ranked: List[RankedResult], cursor_token: Optional[str], page_size: int) -> FeedResponse:
    """
    Slice one page out of a ranked, filtered sequence.

    Args:
        ranked: Full ranked sequence
        cursor_token: Token returned with the previous page, if any
        page_size: Items per page

    Returns:
        FeedResponse with the page and its pagination envelope
    """
    start = start_index(ranked, decode_cursor(cursor_token))
    page = ranked[start:start + page_size]
    has_more = len(ranked) > start + page_size

    next_cursor = None
    if has_more and page:
        next_cursor = encode_cursor(page[-1])

    return FeedResponse(
        items=[FeedItem.from_ranked(result) for result in page],
        pagination=PaginationInfo(
            has_more=has_more,
            next_cursor=next_cursor,
            count=len(page),
            total_available=len(ranked),
        ),
    )
