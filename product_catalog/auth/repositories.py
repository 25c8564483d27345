"""Authentication repositories."""

from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable
from uuid import UUID

from .models import User, Session, CredentialAccount


class UserNotFoundError(Exception):
    """Raised when user is not found."""
    pass


class UserAlreadyExistsError(Exception):
    """Raised when a user with the same email already exists."""
    pass


class CredentialAccountExistsError(Exception):
    """Raised when a credential account with the same username exists."""
    pass


@runtime_checkable
class UserRepository(Protocol):
    """Protocol for user storage."""

    async def create(self, user: User) -> User:
        """
        Create a new user.

        Raises:
            UserAlreadyExistsError: On a unique email conflict
        """
        ...

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        """Get user by ID."""
        ...

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email, case-insensitive."""
        ...

    async def update(self, user: User) -> User:
        """Update existing user."""
        ...


@runtime_checkable
class SessionRepository(Protocol):
    """Protocol for session storage."""

    async def create(self, session: Session) -> Session:
        """Create a new session."""
        ...

    async def get_with_user(self, session_id: str) -> Optional[Tuple[Session, User]]:
        """Get a session together with its owning user."""
        ...

    async def get(self, session_id: str) -> Optional[Session]:
        """Get session by id."""
        ...

    async def delete(self, session_id: str) -> bool:
        """Delete a session. Returns whether a row existed."""
        ...

    async def delete_expired(self, now: datetime) -> int:
        """Delete all sessions with expires_at < now. Returns count deleted."""
        ...


@runtime_checkable
class CredentialAccountRepository(Protocol):
    """Protocol for local credential account storage."""

    async def create(self, account: CredentialAccount) -> CredentialAccount:
        """
        Create a new account.

        Raises:
            CredentialAccountExistsError: On a unique username conflict
        """
        ...

    async def get_by_username(self, username: str) -> Optional[CredentialAccount]:
        """Get account by normalized username."""
        ...

    async def update(self, account: CredentialAccount) -> CredentialAccount:
        """Update existing account."""
        ...


class InMemoryUserRepository:
    """In-memory implementation of UserRepository."""

    def __init__(self):
        self._users: Dict[UUID, User] = {}
        self._by_email: Dict[str, UUID] = {}  # lower(email) -> user id

    async def create(self, user: User) -> User:
        """Create a new user."""
        key = user.email.lower()
        if key in self._by_email:
            raise UserAlreadyExistsError(f"Email {user.email} already registered")

        self._users[user.id] = replace(user)
        self._by_email[key] = user.id
        return user

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        """Get user by ID."""
        user = self._users.get(user_id)
        return replace(user) if user else None

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email."""
        user_id = self._by_email.get(email.lower())
        if user_id:
            return replace(self._users[user_id])
        return None

    async def update(self, user: User) -> User:
        """Update existing user."""
        if user.id not in self._users:
            raise UserNotFoundError(f"User {user.id} not found")

        old_user = self._users[user.id]
        if old_user.email.lower() != user.email.lower():
            del self._by_email[old_user.email.lower()]
            self._by_email[user.email.lower()] = user.id

        self._users[user.id] = replace(user)
        return user

    async def delete(self, user_id: UUID, sessions: Optional["InMemorySessionRepository"] = None) -> None:
        """Delete a user, cascading to its sessions when a session repo is given."""
        user = self._users.pop(user_id, None)
        if user:
            del self._by_email[user.email.lower()]
        if sessions is not None:
            await sessions.delete_by_user_id(user_id)


class InMemorySessionRepository:
    """In-memory implementation of SessionRepository."""

    def __init__(self, user_repo: InMemoryUserRepository):
        self._user_repo = user_repo
        self._sessions: Dict[str, Session] = {}

    async def create(self, session: Session) -> Session:
        """Create a new session."""
        if await self._user_repo.get_by_id(session.user_id) is None:
            raise UserNotFoundError(f"User {session.user_id} not found")
        self._sessions[session.id] = replace(session)
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        """Get session by id."""
        session = self._sessions.get(session_id)
        return replace(session) if session else None

    async def get_with_user(self, session_id: str) -> Optional[Tuple[Session, User]]:
        """Get a session together with its owning user."""
        session = self._sessions.get(session_id)
        if not session:
            return None
        user = await self._user_repo.get_by_id(session.user_id)
        if not user:
            return None
        return replace(session), user

    async def delete(self, session_id: str) -> bool:
        """Delete a session."""
        return self._sessions.pop(session_id, None) is not None

    async def delete_expired(self, now: datetime) -> int:
        """Delete all expired sessions."""
        # No await between selection and removal, so this is atomic on the loop
        expired_ids = [
            sid for sid, session in self._sessions.items()
            if session.expires_at < now
        ]
        for session_id in expired_ids:
            del self._sessions[session_id]
        return len(expired_ids)

    async def delete_by_user_id(self, user_id: UUID) -> int:
        """Delete all sessions for a user."""
        session_ids = [sid for sid, s in self._sessions.items() if s.user_id == user_id]
        for session_id in session_ids:
            del self._sessions[session_id]
        return len(session_ids)

    async def list_by_user(self, user_id: UUID) -> List[Session]:
        """Get all sessions for a user."""
        return [replace(s) for s in self._sessions.values() if s.user_id == user_id]


class InMemoryCredentialAccountRepository:
    """In-memory implementation of CredentialAccountRepository."""

    def __init__(self):
        self._accounts: Dict[str, CredentialAccount] = {}  # username -> account

    async def create(self, account: CredentialAccount) -> CredentialAccount:
        """Create a new account."""
        if account.username in self._accounts:
            raise CredentialAccountExistsError(f"Username {account.username} already registered")
        self._accounts[account.username] = replace(account)
        return account

    async def get_by_username(self, username: str) -> Optional[CredentialAccount]:
        """Get account by normalized username."""
        account = self._accounts.get(username)
        return replace(account) if account else None

    async def update(self, account: CredentialAccount) -> CredentialAccount:
        """Update existing account."""
        if account.username not in self._accounts:
            raise ValueError(f"Account {account.username} not found")
        self._accounts[account.username] = replace(account)
        return account
