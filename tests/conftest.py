"""
Shared fixtures: in-memory repositories, an async Redis stand-in, a fixed
clock and a seeded random source.
"""
import fnmatch
from datetime import datetime, timedelta, timezone
from itertools import count
from random import Random
from typing import Dict, Iterable, List, Optional, Set, Tuple

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ranking_service.cache import RedisCache
from ranking_service.domain.models import (
    ContentItem,
    FriendshipStatus,
    PostOrder,
    PostQuery,
    SocialEdge,
    UserProfile,
    Visibility,
)
from ranking_service.domain.repositories import (
    IContentRepository,
    IGraphRepository,
    IUserRepository,
)

# A Wednesday
NOW = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)


class FakeRedis:
    """Async in-memory subset of redis.asyncio.Redis with decode_responses=True"""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("redis is down")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value):
        self._check()
        self.store[key] = value

    async def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl

    async def delete(self, *keys):
        self._check()
        deleted = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                deleted += 1
            self.ttls.pop(key, None)
        return deleted

    async def scan_iter(self, match=None):
        self._check()
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self):
        pass


class InMemoryGraphRepository(IGraphRepository):
    """Friendships and follows held in lists"""

    def __init__(self, users: Optional[Dict[int, UserProfile]] = None):
        self.friendships: List[SocialEdge] = []
        self.follows: List[SocialEdge] = []
        self.users = users if users is not None else {}
        self.calls: List[str] = []

    def befriend(self, user_id: int, friend_id: int, status=FriendshipStatus.ACCEPTED):
        self.friendships.append(SocialEdge(user_id, friend_id, status))

    def follow(self, follower_id: int, following_id: int, muted: bool = False):
        self.follows.append(SocialEdge(follower_id, following_id, is_follow=True, is_muted=muted))

    def _accepted(self):
        return [(e.user_id, e.other_id) for e in self.friendships if e.is_active()]

    async def get_friend_ids(self, user_id: int) -> Set[int]:
        self.calls.append("get_friend_ids")
        return (await self.get_friend_ids_bulk([user_id]))[user_id]

    async def get_friend_ids_bulk(self, user_ids: Iterable[int]) -> Dict[int, Set[int]]:
        self.calls.append("get_friend_ids_bulk")
        friends = {user_id: set() for user_id in user_ids}
        for a, b in self._accepted():
            if a in friends:
                friends[a].add(b)
            if b in friends:
                friends[b].add(a)
        return friends

    async def get_following_ids(self, user_id: int) -> Set[int]:
        self.calls.append("get_following_ids")
        return {e.other_id for e in self.follows if e.user_id == user_id and e.is_active()}

    async def get_related_user_ids(self, user_id: int) -> Set[int]:
        return {
            e.other(user_id) for e in self.friendships
            if user_id in (e.user_id, e.other_id)
        }

    async def get_popular_users(self, min_friends, exclude_ids, limit) -> Dict[int, int]:
        counts: Dict[int, int] = {}
        for a, b in self._accepted():
            counts[a] = counts.get(a, 0) + 1
            counts[b] = counts.get(b, 0) + 1
        excluded = set(exclude_ids)
        popular = [
            (user_id, friend_count) for user_id, friend_count in counts.items()
            if friend_count > min_friends and user_id not in excluded
        ]
        popular.sort(key=lambda pair: (-pair[1], pair[0]))
        return dict(popular[:limit])

    async def count_suggestable_users(self, exclude_ids) -> int:
        excluded = set(exclude_ids)
        return sum(
            1 for user in self.users.values()
            if user.id not in excluded and user.accepts_suggestions
        )


class InMemoryContentRepository(IContentRepository):
    """Posts filtered with PostQuery.matches"""

    def __init__(self):
        self.posts: List[ContentItem] = []
        self.likes: Dict[int, List[Tuple[datetime, str]]] = {}
        self.queries: List[PostQuery] = []

    def add(self, item: ContentItem) -> ContentItem:
        self.posts.append(item)
        return item

    def like(self, user_id: int, content: str, liked_at: datetime):
        self.likes.setdefault(user_id, []).append((liked_at, content))

    async def find_posts(self, query: PostQuery, now: datetime) -> List[ContentItem]:
        self.queries.append(query)
        matched = [item for item in self.posts if query.matches(item, now)]
        if query.order == PostOrder.MOST_LIKED:
            matched.sort(
                key=lambda item: (item.likes_count, item.published_at or datetime.min.replace(tzinfo=timezone.utc)),
                reverse=True,
            )
        else:
            matched.sort(key=lambda item: (item.timestamp, item.created_at), reverse=True)
        return matched[:query.limit]

    async def get_liked_contents(self, user_id: int, since: datetime, limit: int) -> List[str]:
        liked = [entry for entry in self.likes.get(user_id, []) if entry[0] >= since]
        liked.sort(key=lambda entry: entry[0], reverse=True)
        return [content for _, content in liked[:limit]]


class InMemoryUserRepository(IUserRepository):
    def __init__(self, users: Dict[int, UserProfile]):
        self.users = users

    async def find_by_id(self, user_id: int) -> Optional[UserProfile]:
        return self.users.get(user_id)

    async def find_by_ids(self, user_ids: Iterable[int]) -> Dict[int, UserProfile]:
        return {user_id: self.users[user_id] for user_id in user_ids if user_id in self.users}


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def rng():
    return Random(1234)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return RedisCache(fake_redis)


@pytest.fixture
def users() -> Dict[int, UserProfile]:
    return {}


@pytest.fixture
def graph_repo(users):
    return InMemoryGraphRepository(users)


@pytest.fixture
def content_repo():
    return InMemoryContentRepository()


@pytest.fixture
def user_repo(users):
    return InMemoryUserRepository(users)


@pytest.fixture
def make_user(users):
    """Create a UserProfile and register it with the user repository"""

    def _make_user(user_id: int, **overrides) -> UserProfile:
        fields = dict(
            id=user_id,
            name=f"User {user_id}",
            username=f"user{user_id}",
            created_at=NOW - timedelta(days=365),
            last_activity_at=NOW,
        )
        fields.update(overrides)
        user = UserProfile(**fields)
        users[user_id] = user
        return user

    return _make_user


@pytest.fixture
def make_post(content_repo):
    """Create a ContentItem and add it to the content repository"""
    ids = count(1)

    def _make_post(user_id: int, age: timedelta = timedelta(hours=1), **overrides) -> ContentItem:
        post_id = overrides.pop("id", None) or next(ids)
        created_at = NOW - age
        fields = dict(
            id=post_id,
            user_id=user_id,
            content=f"Post number {post_id}",
            type="text",
            visibility=Visibility.PUBLIC,
            created_at=created_at,
            published_at=created_at,
        )
        fields.update(overrides)
        return content_repo.add(ContentItem(**fields))

    return _make_post
