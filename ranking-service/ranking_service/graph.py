"""
Graph data access over the friendship and follow relations
"""
from typing import Dict, Iterable, List, Optional, Set
import logging

from .cache import RedisCache, friend_ids_key, following_ids_key
from .config import settings
from .domain.repositories import IGraphRepository

logger = logging.getLogger(__name__)


class GraphAccess:
    """
    Adjacency queries for one ranking call

    Friend lists and breadth-first levels are memoized on the instance, so a
    GraphAccess should not outlive the request that created it. Results are
    point-in-time snapshots; nothing is kept consistent across queries.
    """

    def __init__(self, repository: IGraphRepository, cache: Optional[RedisCache] = None):
        self.repository = repository
        self.cache = cache
        self._friends: Dict[int, Set[int]] = {}
        self._levels: Dict[int, List[Set[int]]] = {}

    async def friend_ids(self, user_id: int) -> Set[int]:
        """Get accepted friends, both directions unioned"""
        if user_id in self._friends:
            return self._friends[user_id]

        friends = await self._cached_ids(friend_ids_key(user_id))
        if friends is None:
            friends = await self.repository.get_friend_ids(user_id)
            await self._store_ids(friend_ids_key(user_id), friends)

        self._friends[user_id] = friends
        return friends

    async def following_ids(self, user_id: int) -> Set[int]:
        """Get users followed through active, non-muted follows"""
        following = await self._cached_ids(following_ids_key(user_id))
        if following is None:
            following = await self.repository.get_following_ids(user_id)
            await self._store_ids(following_ids_key(user_id), following)
        return following

    async def friend_ids_of(self, user_ids: Iterable[int]) -> Dict[int, Set[int]]:
        """Get accepted friends for several users, fetching unknown ones in one query"""
        wanted = set(user_ids)
        missing = [user_id for user_id in wanted if user_id not in self._friends]
        if missing:
            fetched = await self.repository.get_friend_ids_bulk(missing)
            for user_id in missing:
                self._friends[user_id] = fetched.get(user_id, set())
        return {user_id: self._friends[user_id] for user_id in wanted}

    async def neighbors_at_degree(self, user_id: int, degree: int) -> Set[int]:
        """
        Get users whose shortest friendship path to user_id has exactly
        `degree` hops. Degree 1 is the direct friend list.
        """
        if degree < 1:
            return set()

        levels = self._levels.get(user_id)
        if levels is None:
            levels = [{user_id}, set(await self.friend_ids(user_id))]
            self._levels[user_id] = levels

        while len(levels) <= degree and levels[-1]:
            seen = set().union(*levels)
            adjacency = await self.friend_ids_of(levels[-1])
            next_level = set()
            for neighbors in adjacency.values():
                next_level.update(neighbors)
            levels.append(next_level - seen)

        if degree < len(levels):
            return set(levels[degree])
        return set()

    async def friend_counts(self, user_ids: Iterable[int]) -> Dict[int, int]:
        """Get accepted friend counts"""
        adjacency = await self.friend_ids_of(user_ids)
        return {user_id: len(friends) for user_id, friends in adjacency.items()}

    async def _cached_ids(self, key: str) -> Optional[Set[int]]:
        if not self.cache:
            return None
        cached = await self.cache.get(key)
        if cached is None:
            return None
        try:
            return {int(user_id) for user_id in cached}
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed adjacency cache entry {key}")
            return None

    async def _store_ids(self, key: str, ids: Set[int]):
        if self.cache:
            await self.cache.set(key, sorted(ids), settings.CACHE_TTL_ADJACENCY)
