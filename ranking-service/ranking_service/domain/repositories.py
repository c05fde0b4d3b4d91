"""
Repository interfaces - Define contracts for data access
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set
from .models import ContentItem, PostQuery, UserProfile


class IGraphRepository(ABC):
    """Social graph repository interface"""

    @abstractmethod
    async def get_friend_ids(self, user_id: int) -> Set[int]:
        """Get accepted friends of a user, in both directions"""
        pass

    @abstractmethod
    async def get_friend_ids_bulk(self, user_ids: Iterable[int]) -> Dict[int, Set[int]]:
        """Get accepted friends for several users at once"""
        pass

    @abstractmethod
    async def get_following_ids(self, user_id: int) -> Set[int]:
        """Get users followed by a user through non-muted follows"""
        pass

    @abstractmethod
    async def get_related_user_ids(self, user_id: int) -> Set[int]:
        """Get users with a friendship record of any status with a user"""
        pass

    @abstractmethod
    async def get_popular_users(
        self, min_friends: int, exclude_ids: Iterable[int], limit: int
    ) -> Dict[int, int]:
        """Get users with more than min_friends accepted friends, mapped to their friend count"""
        pass

    @abstractmethod
    async def count_suggestable_users(self, exclude_ids: Iterable[int]) -> int:
        """Count users open to friend suggestions, ignoring exclude_ids"""
        pass


class IContentRepository(ABC):
    """Post repository interface"""

    @abstractmethod
    async def find_posts(self, query: PostQuery, now: datetime) -> List[ContentItem]:
        """Find posts matching a pool query, ordered and limited by the query"""
        pass

    @abstractmethod
    async def get_liked_contents(
        self, user_id: int, since: datetime, limit: int
    ) -> List[str]:
        """Get the content of posts a user liked since a given time"""
        pass


class IUserRepository(ABC):
    """User repository interface"""

    @abstractmethod
    async def find_by_id(self, user_id: int) -> Optional[UserProfile]:
        """Find user with profile by ID"""
        pass

    @abstractmethod
    async def find_by_ids(self, user_ids: Iterable[int]) -> Dict[int, UserProfile]:
        """Find users with profiles by IDs"""
        pass
