"""Authentication services."""

import logging
import secrets
from datetime import timedelta
from typing import Iterable, Optional
from uuid import UUID, uuid4

from .models import User, Session, SessionInfo, IdentityAssertion
from .repositories import (
    UserRepository,
    SessionRepository,
    UserAlreadyExistsError,
)
from .utils import utcnow

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    """Generate an unguessable session id (43-char URL-safe base64, 32 bytes)."""
    return secrets.token_urlsafe(32)


class SessionService:
    """
    Service for managing user sessions.

    Sessions are absolute: expires_at is set once at creation and never
    extended. Expired sessions are removed lazily on read and in bulk by
    sweep_expired().
    """

    def __init__(
        self,
        session_repo: SessionRepository,
        session_duration: timedelta = timedelta(hours=8),
    ):
        self._session_repo = session_repo
        self._session_duration = session_duration

    async def create_session(
        self,
        user_id: UUID,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Session:
        """
        Create a new session for a user.

        Args:
            user_id: Owning user
            ip_address: Client IP address (audit only)
            user_agent: User agent string (audit only)

        Returns:
            The persisted Session; its id is the cookie value
        """
        now = utcnow()
        session = Session(
            id=generate_session_id(),
            user_id=user_id,
            expires_at=now + self._session_duration,
            created_at=now,
            ip_address=ip_address,
            user_agent=user_agent or None,
        )

        await self._session_repo.create(session)

        logger.info(f"Created session {session.id[:10]}... for user {user_id}")
        return session

    async def get_session(self, session_id: str) -> Optional[SessionInfo]:
        """
        Resolve a session id to its public view.

        Returns:
            SessionInfo if the session exists and has not expired. An
            expired session is deleted and None returned.
        """
        result = await self._session_repo.get_with_user(session_id)
        if not result:
            return None

        session, user = result
        if session.is_expired(utcnow()):
            logger.info(f"Session {session_id[:10]}... expired")
            await self._session_repo.delete(session_id)
            return None

        return SessionInfo(
            session_id=session.id,
            user_id=user.id,
            email=user.email,
            name=user.name,
            picture_url=user.picture_url,
            is_admin=user.is_admin,
            expires_at=session.expires_at,
        )

    async def delete_session(self, session_id: str) -> bool:
        """
        Delete session (logout).

        Returns:
            True if session was deleted, False if not found
        """
        deleted = await self._session_repo.delete(session_id)
        if deleted:
            logger.info(f"Deleted session {session_id[:10]}...")
        return deleted

    async def sweep_expired(self) -> int:
        """
        Remove all expired sessions.

        Returns:
            Number of sessions removed.
        """
        count = await self._session_repo.delete_expired(utcnow())
        if count:
            logger.info(f"Swept {count} expired sessions")
        return count


class UserService:
    """
    Resolves provider identities to local users.

    is_admin comes from the configured allow-list at every login, so a
    change to the list takes effect on the user's next login.
    """

    def __init__(self, user_repo: UserRepository, admin_emails: Iterable[str] = ()):
        self._user_repo = user_repo
        self._admin_emails = frozenset(e.strip().lower() for e in admin_emails if e.strip())

    def is_admin_email(self, email: str) -> bool:
        """Case-insensitive allow-list membership."""
        return email.strip().lower() in self._admin_emails

    async def get_user(self, user_id: UUID) -> Optional[User]:
        """Get user by ID."""
        return await self._user_repo.get_by_id(user_id)

    async def resolve(self, assertion: IdentityAssertion) -> User:
        """
        Find or create the local user for a validated identity.

        Two concurrent first logins for one email both end with the same
        row: the loser of the insert race gets UserAlreadyExistsError from
        the repository and re-reads. Other persistence errors propagate.
        """
        existing = await self._user_repo.get_by_email(assertion.email)
        if existing is None:
            return await self._create_user(assertion)
        return await self._update_user_if_needed(existing, assertion)

    async def _create_user(self, assertion: IdentityAssertion) -> User:
        user = User(
            id=uuid4(),
            email=assertion.email,
            name=assertion.display_name,
            picture_url=assertion.picture_url,
            is_admin=self.is_admin_email(assertion.email),
            created_at=utcnow(),
        )
        try:
            await self._user_repo.create(user)
        except UserAlreadyExistsError:
            logger.info(f"Concurrent first login for {assertion.email}; re-reading existing user")
            winner = await self._user_repo.get_by_email(assertion.email)
            if winner is None:
                raise RuntimeError("User creation failed and retry lookup returned None")
            return await self._update_user_if_needed(winner, assertion)

        logger.info(f"Created new user {user.id} (admin={user.is_admin})")
        return user

    async def _update_user_if_needed(self, user: User, assertion: IdentityAssertion) -> User:
        is_admin = self.is_admin_email(user.email)
        changed = (
            user.name != assertion.display_name
            or user.picture_url != assertion.picture_url
            or user.is_admin != is_admin
        )
        if not changed:
            return user

        if user.is_admin != is_admin:
            logger.info(f"Admin flag for user {user.id} changed to {is_admin}")

        user.name = assertion.display_name
        user.picture_url = assertion.picture_url
        user.is_admin = is_admin
        user.updated_at = utcnow()
        await self._user_repo.update(user)
        return user
