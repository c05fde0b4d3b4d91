"""
Database connection and operations
"""
import asyncpg
from typing import Optional, List, Dict, Any
import logging

from .config import settings
from .exceptions import GraphStoreUnavailable

logger = logging.getLogger(__name__)


class Database:
    """PostgreSQL database connection manager using asyncpg"""

    def __init__(self):
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Create database connection pool"""
        try:
            self.pool = await asyncpg.create_pool(
                settings.DATABASE_URL,
                min_size=1,
                max_size=settings.DB_POOL_SIZE,
                command_timeout=60,
            )
            logger.info("Database connection pool created successfully")
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

    async def disconnect(self):
        """Close database connection pool"""
        if self.pool:
            await self.pool.close()
            logger.info("Database connection pool closed")

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise GraphStoreUnavailable("Database pool is not connected")
        return self.pool

    async def fetch_one(self, query: str, *args) -> Optional[Dict[str, Any]]:
        """Fetch a single row"""
        try:
            async with self._require_pool().acquire() as conn:
                row = await conn.fetchrow(query, *args)
                return dict(row) if row else None
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Graph store query failed: {e}")
            raise GraphStoreUnavailable(str(e)) from e

    async def fetch_all(self, query: str, *args) -> List[Dict[str, Any]]:
        """Fetch all rows"""
        try:
            async with self._require_pool().acquire() as conn:
                rows = await conn.fetch(query, *args)
                return [dict(row) for row in rows]
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Graph store query failed: {e}")
            raise GraphStoreUnavailable(str(e)) from e

    async def fetch_val(self, query: str, *args) -> Any:
        """Fetch a single value"""
        try:
            async with self._require_pool().acquire() as conn:
                return await conn.fetchval(query, *args)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Graph store query failed: {e}")
            raise GraphStoreUnavailable(str(e)) from e


# Global database instance
db = Database()


async def get_db() -> Database:
    """Dependency for getting database instance"""
    return db
