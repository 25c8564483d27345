"""
Shared pytest fixtures for all tests.

Provides an isolated in-memory SQLite database and test settings.
"""

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from product_catalog.core.config import Settings
from product_catalog.core.database import create_engine_for_url, create_session_factory, init_database
from tests.helpers.auth_fakes import (
    ADMIN_EMAIL,
    TEST_CLIENT_ID,
    TEST_CLIENT_SECRET,
    TEST_JWT_AUDIENCE,
    TEST_JWT_ISSUER,
    TEST_JWT_SECRET,
)


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    """Settings with every secret present and the sweeper disabled."""
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        GOOGLE_CLIENT_ID=TEST_CLIENT_ID,
        GOOGLE_CLIENT_SECRET=TEST_CLIENT_SECRET,
        FRONTEND_BASE_URL="http://localhost:3000",
        ADMIN_EMAILS=ADMIN_EMAIL,
        SESSION_EXPIRATION_HOURS=8,
        SESSION_SWEEP_INTERVAL_MINUTES=0,
        JWT_SECRET=TEST_JWT_SECRET,
        JWT_ISSUER=TEST_JWT_ISSUER,
        JWT_AUDIENCE=TEST_JWT_AUDIENCE,
        JWT_EXPIRATION_HOURS=24,
    )


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest_asyncio.fixture
async def engine():
    """
    Async in-memory SQLite engine with all tables created.

    Uses StaticPool so every session shares the one in-memory database.
    """
    engine = create_engine_for_url(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_database(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """A database session for repository tests."""
    async with session_factory() as session:
        yield session
