"""
Repository implementations - Data access layer
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
import json

from ..database import Database
from ..domain.models import (
    ContentItem,
    FriendshipStatus,
    PostOrder,
    PostQuery,
    SocialEdge,
    UserProfile,
    Visibility,
)
from ..domain.repositories import IContentRepository, IGraphRepository, IUserRepository


def _json_list(value: Any) -> List:
    """Decode a jsonb array column"""
    if value is None:
        return []
    if isinstance(value, str):
        value = json.loads(value)
    return list(value) if isinstance(value, list) else []


class GraphRepository(IGraphRepository):
    """Social graph repository implementation using PostgreSQL"""

    def __init__(self, db: Database):
        self.db = db

    async def get_friend_ids(self, user_id: int) -> Set[int]:
        """Get accepted friends of a user, in both directions"""
        friends = await self.get_friend_ids_bulk([user_id])
        return friends.get(user_id, set())

    async def get_friend_ids_bulk(self, user_ids: Iterable[int]) -> Dict[int, Set[int]]:
        """Get accepted friends for several users at once"""
        ids = list(set(user_ids))
        if not ids:
            return {}

        rows = await self.db.fetch_all(
            """
            SELECT user_id, friend_id, status
            FROM friendships
            WHERE status = 'accepted'
              AND deleted_at IS NULL
              AND (user_id = ANY($1::bigint[]) OR friend_id = ANY($1::bigint[]))
            """,
            ids
        )

        wanted = set(ids)
        friends: Dict[int, Set[int]] = {user_id: set() for user_id in ids}
        for row in rows:
            edge = SocialEdge(row["user_id"], row["friend_id"], FriendshipStatus(row["status"]))
            if not edge.is_active():
                continue
            for user_id in (edge.user_id, edge.other_id):
                if user_id in wanted:
                    friends[user_id].add(edge.other(user_id))
        return friends

    async def get_following_ids(self, user_id: int) -> Set[int]:
        """Get users followed by a user through non-muted follows"""
        rows = await self.db.fetch_all(
            """
            SELECT following_id
            FROM follows
            WHERE follower_id = $1 AND is_muted = false AND deleted_at IS NULL
            """,
            user_id
        )
        return {row["following_id"] for row in rows}

    async def get_related_user_ids(self, user_id: int) -> Set[int]:
        """Get users with a friendship record of any status with a user"""
        rows = await self.db.fetch_all(
            """
            SELECT CASE WHEN user_id = $1 THEN friend_id ELSE user_id END AS other_id
            FROM friendships
            WHERE (user_id = $1 OR friend_id = $1) AND deleted_at IS NULL
            """,
            user_id
        )
        return {row["other_id"] for row in rows}

    async def get_popular_users(
        self, min_friends: int, exclude_ids: Iterable[int], limit: int
    ) -> Dict[int, int]:
        """Get users with more than min_friends accepted friends"""
        rows = await self.db.fetch_all(
            """
            WITH edges AS (
                SELECT user_id AS uid FROM friendships
                WHERE status = 'accepted' AND deleted_at IS NULL
                UNION ALL
                SELECT friend_id AS uid FROM friendships
                WHERE status = 'accepted' AND deleted_at IS NULL
            )
            SELECT uid AS user_id, COUNT(*) AS friend_count
            FROM edges
            WHERE NOT (uid = ANY($2::bigint[]))
            GROUP BY uid
            HAVING COUNT(*) > $1
            ORDER BY friend_count DESC, uid ASC
            LIMIT $3
            """,
            min_friends, list(exclude_ids), limit
        )
        return {row["user_id"]: row["friend_count"] for row in rows}

    async def count_suggestable_users(self, exclude_ids: Iterable[int]) -> int:
        """Count users open to friend suggestions"""
        count = await self.db.fetch_val(
            """
            SELECT COUNT(*)
            FROM users u
            INNER JOIN user_profiles pr ON pr.user_id = u.id
            WHERE pr.allow_friend_requests = true
              AND pr.is_private_profile = false
              AND NOT (u.id = ANY($1::bigint[]))
            """,
            list(exclude_ids)
        )
        return count or 0


class ContentRepository(IContentRepository):
    """Post repository implementation using PostgreSQL"""

    def __init__(self, db: Database):
        self.db = db

    def _row_to_item(self, row: Optional[Dict[str, Any]]) -> Optional[ContentItem]:
        """Convert database row to ContentItem model"""
        if not row:
            return None
        data = dict(row)
        data["visibility"] = Visibility(data["visibility"])
        data["tags"] = _json_list(data.get("tags"))
        return ContentItem(**data)

    def _build_where(self, query: PostQuery, now: datetime) -> Tuple[str, List[Any]]:
        """Translate a PostQuery into a WHERE clause and its arguments"""
        args: List[Any] = [now]
        conditions = [
            "p.deleted_at IS NULL",
            "(p.published_at IS NULL OR p.published_at <= $1)",
        ]

        def arg(value: Any) -> str:
            args.append(value)
            return f"${len(args)}"

        if not query.viewer_is_admin:
            conditions.append(
                f"((p.is_hidden = false AND p.is_reported = false) OR p.user_id = {arg(query.viewer_id)})"
            )

        if query.author_ids is not None:
            authors = f"p.user_id = ANY({arg(list(query.author_ids))}::bigint[])"
            if query.include_public:
                authors = f"({authors} OR p.visibility = 'public')"
            conditions.append(authors)

        if query.exclude_author_ids:
            conditions.append(
                f"NOT (p.user_id = ANY({arg(list(query.exclude_author_ids))}::bigint[]))"
            )

        if query.visibility is not None:
            conditions.append(f"p.visibility = {arg(query.visibility.value)}")

        if query.created_after is not None:
            conditions.append(f"p.created_at >= {arg(query.created_after)}")

        if query.published_after is not None:
            conditions.append(f"p.published_at >= {arg(query.published_after)}")

        if query.min_likes is not None:
            popular = [f"p.likes_count >= {arg(query.min_likes)}"]
            if query.interests:
                patterns = [f"%{interest}%" for interest in query.interests]
                popular.append(f"p.content ILIKE ANY({arg(patterns)}::text[])")
                popular.append(
                    f"COALESCE(p.metadata->'tags', '[]'::jsonb) ?| {arg(list(query.interests))}::text[]"
                )
            conditions.append("(" + " OR ".join(popular) + ")")

        return " AND ".join(conditions), args

    async def find_posts(self, query: PostQuery, now: datetime) -> List[ContentItem]:
        """Find posts matching a pool query"""
        where, args = self._build_where(query, now)

        if query.order == PostOrder.MOST_LIKED:
            order_by = "p.likes_count DESC, p.published_at DESC NULLS LAST"
        else:
            order_by = "COALESCE(p.published_at, p.created_at) DESC, p.created_at DESC"

        args.append(query.limit)
        rows = await self.db.fetch_all(
            f"""
            SELECT p.id, p.user_id, p.content, p.type, p.visibility,
                   p.created_at, p.published_at,
                   p.likes_count, p.comments_count, p.shares_count, p.views_count,
                   COALESCE(p.metadata->'tags', '[]'::jsonb) AS tags,
                   EXISTS(
                       SELECT 1 FROM media_attachments m
                       WHERE m.attachable_id = p.id AND m.status = 'ready'
                   ) AS has_media,
                   p.is_hidden, p.is_reported, p.group_id
            FROM posts p
            WHERE {where}
            ORDER BY {order_by}
            LIMIT ${len(args)}
            """,
            *args
        )
        return [self._row_to_item(row) for row in rows]

    async def get_liked_contents(
        self, user_id: int, since: datetime, limit: int
    ) -> List[str]:
        """Get the content of posts a user liked since a given time"""
        rows = await self.db.fetch_all(
            """
            SELECT p.content
            FROM likes l
            INNER JOIN posts p ON p.id = l.likeable_id
            WHERE l.user_id = $1
              AND l.likeable_type = 'post'
              AND l.created_at >= $2
            ORDER BY l.created_at DESC
            LIMIT $3
            """,
            user_id, since, limit
        )
        return [row["content"] for row in rows]


class UserRepository(IUserRepository):
    """User repository implementation using PostgreSQL"""

    _SELECT = """
        SELECT u.id, u.name, u.username, u.created_at, u.last_activity_at, u.is_admin,
               pr.avatar_url, pr.is_verified, pr.bio, pr.location,
               pr.favorite_genres, pr.favorite_authors, pr.reading_goals,
               pr.allow_friend_requests, pr.is_private_profile, pr.show_algorithmic_feed
        FROM users u
        INNER JOIN user_profiles pr ON pr.user_id = u.id
    """

    def __init__(self, db: Database):
        self.db = db

    def _row_to_user(self, row: Optional[Dict[str, Any]]) -> Optional[UserProfile]:
        """Convert database row to UserProfile model"""
        if not row:
            return None
        data = dict(row)
        data["favorite_genres"] = _json_list(data.get("favorite_genres"))
        data["favorite_authors"] = _json_list(data.get("favorite_authors"))
        goals = data.get("reading_goals")
        data["reading_goals"] = json.loads(goals) if isinstance(goals, str) else goals
        data["is_verified"] = bool(data.get("is_verified"))
        data["is_admin"] = bool(data.get("is_admin"))
        return UserProfile(**data)

    async def find_by_id(self, user_id: int) -> Optional[UserProfile]:
        """Find user with profile by ID"""
        row = await self.db.fetch_one(self._SELECT + " WHERE u.id = $1", user_id)
        return self._row_to_user(row)

    async def find_by_ids(self, user_ids: Iterable[int]) -> Dict[int, UserProfile]:
        """Find users with profiles by IDs"""
        ids = list(set(user_ids))
        if not ids:
            return {}
        rows = await self.db.fetch_all(
            self._SELECT + " WHERE u.id = ANY($1::bigint[])", ids
        )
        users = [self._row_to_user(row) for row in rows]
        return {user.id: user for user in users}
