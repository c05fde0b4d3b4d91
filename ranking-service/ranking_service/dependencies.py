"""
Service wiring for Ranking Service
"""
from .cache import cache as default_cache, RedisCache
from .database import db as default_db, Database
from .feed_service import FeedService
from .infrastructure.repositories import ContentRepository, GraphRepository, UserRepository
from .suggestions import SuggestionService


def get_feed_service(db: Database = default_db, cache: RedisCache = default_cache) -> FeedService:
    """Get FeedService instance with dependencies"""
    return FeedService(ContentRepository(db), GraphRepository(db), cache)


def get_suggestion_service(
    db: Database = default_db, cache: RedisCache = default_cache
) -> SuggestionService:
    """Get SuggestionService instance with dependencies"""
    return SuggestionService(GraphRepository(db), UserRepository(db), cache)
