"""
Database configuration and session management.

Provides async engines, session factories and metadata for ORM models.
The app factory owns the engine; nothing here connects at import time.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
import logging

logger = logging.getLogger(__name__)

# Create declarative base for ORM models
Base = declarative_base()


def to_async_url(url: str) -> str:
    """Convert a plain driver URL to its async equivalent."""
    if url.startswith('postgresql://'):
        return url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    if url.startswith('sqlite://'):
        return url.replace('sqlite://', 'sqlite+aiosqlite://', 1)
    return url


def create_engine_for_url(url: str, **kwargs) -> AsyncEngine:
    """
    Create an async engine.

    SQLite needs foreign keys switched on per connection for the
    session -> user cascade to hold.
    """
    async_url = to_async_url(url)
    engine = create_async_engine(async_url, echo=False, **kwargs)

    if async_url.startswith('sqlite'):
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_fks(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_database(engine: AsyncEngine) -> None:
    """
    Initialize database - create tables if they don't exist.

    Note: In production, use migrations instead.
    This is mainly for development/testing.
    """
    # Import ALL ORM models so they're registered with Base.
    from product_catalog.auth.db_models import (  # noqa: F401
        UserORM, UserSessionORM, CredentialAccountORM
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created/verified")
