"""
Database connection and session management with connection pooling.

Provides async SQLAlchemy engine and session factory. PostgreSQL (asyncpg)
in production; sqlite+aiosqlite for local runs and tests.

Each `session()` block is one transaction: it commits when the block exits
cleanly and rolls back on any exception. Multi-statement writes such as the
range shift + target update of a reposition rely on this.
"""

import logging
from typing import AsyncGenerator, Optional, Dict, Any
from contextlib import asynccontextmanager

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import NullPool, QueuePool, StaticPool

from config import settings
from .models import Base

logger = logging.getLogger(__name__)


def _normalize_url(database_url: str) -> str:
    """Convert postgres:// and postgresql:// to postgresql+asyncpg://."""
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


class Database:
    """Database connection manager."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._initialized = False

    @property
    def is_sqlite(self) -> bool:
        return (self.database_url or settings.database_url).startswith("sqlite")

    async def initialize(self) -> bool:
        """Initialize database connection and create tables."""
        if self._initialized:
            return True

        database_url = self.database_url or settings.database_url
        if not database_url:
            logger.warning("DATABASE_URL not configured")
            return False

        try:
            database_url = _normalize_url(database_url)

            engine_kwargs: Dict[str, Any] = {}

            if database_url.startswith("sqlite"):
                # One shared connection so in-memory databases survive across sessions
                engine_kwargs = {
                    "poolclass": StaticPool,
                    "connect_args": {"check_same_thread": False},
                }
                logger.info("Using StaticPool for sqlite database")
            elif settings.environment == "test":
                engine_kwargs = {
                    "poolclass": NullPool,
                }
                logger.info("Using NullPool for test environment")
            else:
                engine_kwargs = {
                    "poolclass": QueuePool,
                    "pool_size": settings.db_pool_size,          # Persistent connections
                    "max_overflow": settings.db_max_overflow,    # Burst connections
                    "pool_timeout": settings.db_pool_timeout,    # Wait time for connection
                    "pool_recycle": settings.db_pool_recycle,    # Recycle after N seconds
                    "pool_pre_ping": True,                       # Validate before use
                    "connect_args": {
                        "server_settings": {
                            "application_name": "roadmap-canvas",
                            "jit": "off",
                        }
                    },
                }
                logger.info(
                    f"Database pool config: size={settings.db_pool_size}, "
                    f"max_overflow={settings.db_max_overflow}, "
                    f"timeout={settings.db_pool_timeout}s"
                )

            self.engine = create_async_engine(
                database_url,
                echo=settings.database_echo,
                **engine_kwargs
            )

            if database_url.startswith("sqlite"):
                # Cascading deletes need foreign keys switched on per connection
                @event.listens_for(self.engine.sync_engine, "connect")
                def _enable_foreign_keys(dbapi_connection, connection_record):
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()

            self.session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            self._initialized = True
            logger.info("Database initialized successfully")
            return True

        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            return False

    async def close(self):
        """Close database connection."""
        if self.engine:
            await self.engine.dispose()
            self._initialized = False
            logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session (one transaction)."""
        if not self._initialized:
            await self.initialize()

        if not self.session_factory:
            raise RuntimeError("Database not initialized")

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(f"Database session error: {e}")
                raise

    async def is_available(self) -> bool:
        """Check if database is available."""
        if not self._initialized:
            return await self.initialize()
        return self._initialized

    async def health_check(self) -> dict:
        """Perform health check on database."""
        try:
            if not self._initialized:
                await self.initialize()

            async with self.session() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            return {
                "status": "healthy",
                "initialized": self._initialized,
                "pool": await self.get_pool_status(),
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
            }

    async def get_pool_status(self) -> Dict[str, Any]:
        """Get connection pool status for monitoring."""
        if not self.engine:
            return {
                "status": "not_initialized",
                "error": "Engine not created"
            }

        pool = self.engine.pool

        if not isinstance(pool, QueuePool):
            return {
                "pool_type": type(pool).__name__,
                "status": "no_pooling",
            }

        size = pool.size()
        checked_out = pool.checkedout()
        max_connections = size + pool._max_overflow
        utilization = checked_out / max(max_connections, 1)

        if utilization > 0.9:
            health = "critical"
        elif utilization > 0.8:
            health = "warning"
        else:
            health = "healthy"

        return {
            "pool_type": "QueuePool",
            "status": health,
            "size": size,
            "checked_in": pool.checkedin(),
            "checked_out": checked_out,
            "overflow": pool.overflow(),
            "max_connections": max_connections,
            "utilization": f"{utilization:.1%}",
        }


# Singleton instance
_database: Optional[Database] = None


def get_database() -> Database:
    """Get the database singleton."""
    global _database
    if _database is None:
        _database = Database()
    return _database


def set_database(database: Optional[Database]) -> None:
    """Replace the database singleton (tests, embedded use)."""
    global _database
    _database = database


async def init_database() -> bool:
    """Initialize the database."""
    db = get_database()
    return await db.initialize()


async def close_database():
    """Close the database connection."""
    global _database
    if _database:
        await _database.close()
        _database = None
