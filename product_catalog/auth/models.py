"""
Authentication data models.

Defines core domain models for auth system:
- PkceData: per-login-attempt PKCE triple
- IdentityAssertion: validated identity from the external provider
- User: Core user identity (OAuth path)
- Session / SessionInfo: server-side web session and its public view
- CredentialAccount / IssuedToken: local username/password path
- Principal: Current authenticated caller, either scheme
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional
from uuid import UUID


ADMIN_ROLE = "admin"
ROLE_MAX_LENGTH = 32


class AuthScheme(str, Enum):
    """How a principal was authenticated."""
    SESSION = "session"
    BEARER = "bearer"


@dataclass(frozen=True)
class PkceData:
    """
    PKCE values for one login attempt.

    Only the verifier and state leave the server (in short-lived cookies);
    the challenge goes to the provider.
    """
    code_verifier: str
    code_challenge: str
    state: str


@dataclass(frozen=True)
class IdentityAssertion:
    """Identity claims taken from a validated provider ID token."""
    subject_id: str
    email: str
    display_name: str
    picture_url: Optional[str]
    email_verified: bool


@dataclass
class User:
    """
    Core user identity.

    One row per distinct email (case-insensitive). is_admin is derived
    from the admin allow-list at every login.
    """
    id: UUID
    email: str
    name: str
    picture_url: Optional[str]
    is_admin: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


@dataclass
class Session:
    """
    Web session.

    The id is the opaque cookie value. expires_at is fixed at creation;
    sessions are absolute, not sliding.
    """
    id: str
    user_id: UUID
    expires_at: datetime
    created_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        """Check if session has expired."""
        return self.expires_at < now


@dataclass(frozen=True)
class SessionInfo:
    """Read-only projection of a live session and its owning user."""
    session_id: str
    user_id: UUID
    email: str
    name: str
    picture_url: Optional[str]
    is_admin: bool
    expires_at: datetime


@dataclass
class CredentialAccount:
    """Local username/password identity used by the bearer-token login."""
    id: UUID
    username: str
    password_hash: str
    role: str
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class IssuedToken:
    """Signed bearer token returned by a successful credential login."""
    token: str
    username: str
    expires_at: datetime


@dataclass(frozen=True)
class Principal:
    """
    Current authenticated caller.

    Built by either the session resolver or the bearer resolver and
    attached to request.state.principal.
    """
    user_id: str
    name: str
    scheme: AuthScheme
    email: Optional[str] = None
    session_id: Optional[str] = None
    username: Optional[str] = None
    token_id: Optional[str] = None
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        """True if the admin role claim is present."""
        return ADMIN_ROLE in self.roles
