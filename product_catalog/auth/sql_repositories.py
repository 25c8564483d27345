"""
SQLAlchemy-backed authentication repositories.

Same contracts as the in-memory repositories in repositories.py, over an
AsyncSession. Each write commits; callers share one session per request.
"""
from datetime import datetime
from typing import Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .db_models import UserORM, UserSessionORM, CredentialAccountORM
from .models import User, Session, CredentialAccount
from .repositories import (
    UserAlreadyExistsError,
    UserNotFoundError,
    CredentialAccountExistsError,
)
from .utils import ensure_utc

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE for unique_violation
PG_UNIQUE_VIOLATION = "23505"


def is_unique_violation(error: IntegrityError) -> bool:
    """
    True if an IntegrityError was caused by a unique constraint.

    Checks the driver SQLSTATE first, then falls back to the message text
    used by PostgreSQL ("duplicate key") and SQLite ("UNIQUE constraint").
    """
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == PG_UNIQUE_VIOLATION:
        return True
    message = str(orig).lower()
    return PG_UNIQUE_VIOLATION in message or "duplicate key" in message or "unique constraint" in message


def _user_from_row(row: UserORM) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        picture_url=row.picture_url,
        is_admin=row.is_admin,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _session_from_row(row: UserSessionORM) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        expires_at=ensure_utc(row.expires_at),
        created_at=ensure_utc(row.created_at),
        ip_address=row.ip_address,
        user_agent=row.user_agent,
    )


def _account_from_row(row: CredentialAccountORM) -> CredentialAccount:
    return CredentialAccount(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        role=row.role,
        is_active=row.is_active,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


class SqlUserRepository:
    """UserRepository over the users table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, user: User) -> User:
        self.db.add(UserORM(
            id=user.id,
            email=user.email,
            name=user.name,
            picture_url=user.picture_url,
            is_admin=user.is_admin,
            created_at=user.created_at,
            updated_at=user.updated_at,
        ))
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_unique_violation(e):
                raise UserAlreadyExistsError(f"Email {user.email} already registered") from e
            raise
        return user

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        query = select(UserORM).where(UserORM.id == user_id).execution_options(populate_existing=True)
        row = (await self.db.execute(query)).scalar_one_or_none()
        return _user_from_row(row) if row else None

    async def get_by_email(self, email: str) -> Optional[User]:
        query = select(UserORM).where(
            func.lower(UserORM.email) == email.lower()
        ).execution_options(populate_existing=True)
        row = (await self.db.execute(query)).scalar_one_or_none()
        return _user_from_row(row) if row else None

    async def update(self, user: User) -> User:
        query = update(UserORM).where(UserORM.id == user.id).values(
            email=user.email,
            name=user.name,
            picture_url=user.picture_url,
            is_admin=user.is_admin,
            updated_at=user.updated_at,
        )
        result = await self.db.execute(query)
        await self.db.commit()
        if result.rowcount == 0:
            raise UserNotFoundError(f"User {user.id} not found")
        return user

    async def delete(self, user_id: UUID) -> bool:
        """Delete a user; its sessions go with it via ON DELETE CASCADE."""
        result = await self.db.execute(delete(UserORM).where(UserORM.id == user_id))
        await self.db.commit()
        return result.rowcount > 0


class SqlSessionRepository:
    """SessionRepository over the user_sessions table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, session: Session) -> Session:
        self.db.add(UserSessionORM(
            id=session.id,
            user_id=session.user_id,
            expires_at=session.expires_at,
            ip_address=session.ip_address,
            user_agent=session.user_agent,
            created_at=session.created_at,
        ))
        await self.db.commit()
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        query = select(UserSessionORM).where(
            UserSessionORM.id == session_id
        ).execution_options(populate_existing=True)
        row = (await self.db.execute(query)).scalar_one_or_none()
        return _session_from_row(row) if row else None

    async def get_with_user(self, session_id: str) -> Optional[Tuple[Session, User]]:
        query = select(UserSessionORM, UserORM).join(
            UserORM, UserSessionORM.user_id == UserORM.id
        ).where(
            UserSessionORM.id == session_id
        ).execution_options(populate_existing=True)
        row = (await self.db.execute(query)).first()
        if not row:
            return None
        session_row, user_row = row
        return _session_from_row(session_row), _user_from_row(user_row)

    async def delete(self, session_id: str) -> bool:
        result = await self.db.execute(
            delete(UserSessionORM).where(UserSessionORM.id == session_id)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def delete_expired(self, now: datetime) -> int:
        # Single conditional DELETE; concurrent creates get fresh ids and
        # future expiries, so they can never match.
        result = await self.db.execute(
            delete(UserSessionORM).where(UserSessionORM.expires_at < now)
        )
        await self.db.commit()
        return result.rowcount


class SqlCredentialAccountRepository:
    """CredentialAccountRepository over the credential_accounts table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, account: CredentialAccount) -> CredentialAccount:
        self.db.add(CredentialAccountORM(
            id=account.id,
            username=account.username,
            password_hash=account.password_hash,
            role=account.role,
            is_active=account.is_active,
            created_at=account.created_at,
            updated_at=account.updated_at,
        ))
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_unique_violation(e):
                raise CredentialAccountExistsError(
                    f"Username {account.username} already registered"
                ) from e
            raise
        return account

    async def get_by_username(self, username: str) -> Optional[CredentialAccount]:
        query = select(CredentialAccountORM).where(
            CredentialAccountORM.username == username
        ).execution_options(populate_existing=True)
        row = (await self.db.execute(query)).scalar_one_or_none()
        return _account_from_row(row) if row else None

    async def update(self, account: CredentialAccount) -> CredentialAccount:
        result = await self.db.execute(
            update(CredentialAccountORM).where(CredentialAccountORM.id == account.id).values(
                password_hash=account.password_hash,
                role=account.role,
                is_active=account.is_active,
                updated_at=account.updated_at,
            )
        )
        await self.db.commit()
        if result.rowcount == 0:
            raise ValueError(f"Account {account.username} not found")
        return account
