"""
Store: database engine and transactional session scopes.
Uses SQLAlchemy 2.0 async pattern.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from authkernel.config import Settings, get_settings


def build_engine(database_url: str, debug: bool = False) -> AsyncEngine:
    """Create an async engine with options matching the database type."""
    if not database_url.startswith("sqlite"):
        # PostgreSQL settings with connection pooling
        return create_async_engine(
            database_url,
            echo=debug,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
        )

    in_memory = database_url.endswith("://") or ":memory:" in database_url
    # An in-memory database lives and dies with its connection, so it must be
    # shared; file databases get a fresh connection per session.
    engine = create_async_engine(
        database_url,
        echo=debug,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool if in_memory else NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable foreign keys (and WAL for file databases) on every new SQLite connection."""
        cursor = dbapi_conn.cursor()
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


class Store:
    """
    Relational store used by the engine.

    Hands out sessions; every mutation runs inside transaction(), which
    commits when the block exits normally and rolls back on any exception.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_maker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Store":
        settings = settings or get_settings()
        return cls(build_engine(settings.database_url, debug=settings.debug))

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session for read-only work."""
        async with self.session_maker() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session bound to one transaction: commit on exit, rollback on error."""
        async with self.session_maker() as session:
            async with session.begin():
                yield session

    async def init_db(self) -> None:
        """Create all engine tables."""
        # Import Base from kernel models to ensure all models are registered
        from authkernel.kernel.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_db(self) -> None:
        from authkernel.kernel.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()
