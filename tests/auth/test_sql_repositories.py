"""
Tests for the SQLAlchemy auth repositories.

Run against in-memory SQLite through aiosqlite with foreign keys enforced.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from product_catalog.auth.db_models import UserSessionORM
from product_catalog.auth.models import CredentialAccount, Session, User
from product_catalog.auth.repositories import (
    CredentialAccountExistsError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from product_catalog.auth.services import SessionService, UserService
from product_catalog.auth.sql_repositories import (
    SqlCredentialAccountRepository,
    SqlSessionRepository,
    SqlUserRepository,
)
from product_catalog.auth.utils import utcnow
from tests.helpers.auth_fakes import ExpirableSqlSessionRepository, make_assertion


def _user(email="shopper@example.com", **kwargs):
    return User(
        id=kwargs.pop("id", uuid4()),
        email=email,
        name=kwargs.pop("name", "Test Shopper"),
        picture_url=kwargs.pop("picture_url", None),
        is_admin=kwargs.pop("is_admin", False),
        created_at=kwargs.pop("created_at", utcnow()),
    )


class TestSqlUserRepository:
    """Tests for SqlUserRepository."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, db_session):
        repo = SqlUserRepository(db_session)
        user = await repo.create(_user("Shopper@Example.com"))

        by_id = await repo.get_by_id(user.id)
        by_email = await repo.get_by_email("SHOPPER@example.COM")

        assert by_id.email == "Shopper@Example.com"
        assert by_email.id == user.id
        # SQLite drops tzinfo; repositories hand back aware UTC
        assert by_id.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_duplicate_email_any_case_is_rejected(self, db_session):
        repo = SqlUserRepository(db_session)
        await repo.create(_user("dup@example.com"))

        with pytest.raises(UserAlreadyExistsError):
            await repo.create(_user("DUP@Example.com"))

        # Session is usable after the rollback
        assert (await repo.get_by_email("dup@example.com")) is not None

    @pytest.mark.asyncio
    async def test_update(self, db_session):
        repo = SqlUserRepository(db_session)
        user = await repo.create(_user())

        user.name = "Renamed"
        user.is_admin = True
        user.updated_at = utcnow()
        await repo.update(user)

        stored = await repo.get_by_id(user.id)
        assert stored.name == "Renamed"
        assert stored.is_admin is True
        assert stored.updated_at is not None

    @pytest.mark.asyncio
    async def test_update_missing_user(self, db_session):
        with pytest.raises(UserNotFoundError):
            await SqlUserRepository(db_session).update(_user())


class TestSqlSessionRepository:
    """Tests for SqlSessionRepository."""

    @pytest.mark.asyncio
    async def test_get_with_user(self, db_session):
        users = SqlUserRepository(db_session)
        sessions = SqlSessionRepository(db_session)
        user = await users.create(_user())
        now = utcnow()
        await sessions.create(Session(id="sess-1", user_id=user.id, expires_at=now + timedelta(hours=8), created_at=now))

        session, owner = await sessions.get_with_user("sess-1")

        assert session.user_id == user.id
        assert owner.email == user.email
        assert session.expires_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_delete(self, db_session):
        users = SqlUserRepository(db_session)
        sessions = SqlSessionRepository(db_session)
        user = await users.create(_user())
        now = utcnow()
        await sessions.create(Session(id="sess-1", user_id=user.id, expires_at=now + timedelta(hours=1), created_at=now))

        assert await sessions.delete("sess-1") is True
        assert await sessions.delete("sess-1") is False
        assert await sessions.get("sess-1") is None

    @pytest.mark.asyncio
    async def test_delete_expired_is_one_conditional_delete(self, db_session):
        users = SqlUserRepository(db_session)
        sessions = SqlSessionRepository(db_session)
        user = await users.create(_user())
        now = utcnow()
        await sessions.create(Session(id="live", user_id=user.id, expires_at=now + timedelta(hours=1), created_at=now))
        await sessions.create(Session(id="dead-1", user_id=user.id, expires_at=now - timedelta(hours=1), created_at=now))
        await sessions.create(Session(id="dead-2", user_id=user.id, expires_at=now - timedelta(seconds=1), created_at=now))

        assert await sessions.delete_expired(utcnow()) == 2
        assert await sessions.get("live") is not None
        assert await sessions.get("dead-1") is None

    @pytest.mark.asyncio
    async def test_user_delete_cascades(self, db_session):
        users = SqlUserRepository(db_session)
        sessions = SqlSessionRepository(db_session)
        user = await users.create(_user())
        now = utcnow()
        await sessions.create(Session(id="sess-1", user_id=user.id, expires_at=now + timedelta(hours=1), created_at=now))

        assert await users.delete(user.id) is True

        count = await db_session.scalar(select(func.count()).select_from(UserSessionORM))
        assert count == 0


class TestSqlCredentialAccountRepository:
    """Tests for SqlCredentialAccountRepository."""

    @pytest.mark.asyncio
    async def test_duplicate_username_rejected(self, db_session):
        repo = SqlCredentialAccountRepository(db_session)
        account = CredentialAccount(
            id=uuid4(), username="admin", password_hash="x", role="admin",
            is_active=True, created_at=utcnow(),
        )
        await repo.create(account)

        with pytest.raises(CredentialAccountExistsError):
            await repo.create(CredentialAccount(
                id=uuid4(), username="admin", password_hash="y", role="admin",
                is_active=True, created_at=utcnow(),
            ))

        stored = await repo.get_by_username("admin")
        assert stored.password_hash == "x"


class TestServicesOverSql:
    """The services behave the same over SQL storage."""

    @pytest.mark.asyncio
    async def test_lazy_expiry_deletes_row(self, db_session):
        users = SqlUserRepository(db_session)
        sessions = ExpirableSqlSessionRepository(db_session)
        service = SessionService(sessions, session_duration=timedelta(hours=1))
        user = await UserService(users).resolve(make_assertion())
        session = await service.create_session(user.id)
        await sessions.update_expiry(session.id, utcnow() - timedelta(seconds=1))

        assert await service.get_session(session.id) is None
        assert await sessions.get(session.id) is None

    @pytest.mark.asyncio
    async def test_race_loser_rereads_existing_row(self, db_session):
        """Unique violation on insert is translated and the winner returned."""
        users = SqlUserRepository(db_session)
        winner = await users.create(_user("race@example.com"))

        class StaleLookupRepository(SqlUserRepository):
            # First lookup misses, as if the winner had not committed yet
            calls = 0

            async def get_by_email(self, email):
                StaleLookupRepository.calls += 1
                if StaleLookupRepository.calls == 1:
                    return None
                return await super().get_by_email(email)

        resolved = await UserService(StaleLookupRepository(db_session)).resolve(make_assertion("Race@Example.com"))

        assert resolved.id == winner.id
