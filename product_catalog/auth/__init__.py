"""
Authentication for the Product Catalog API.

Google sign-in with PKCE backed by server-side sessions, plus a
username/password login that issues stateless bearer tokens. Both end up
as a Principal on request.state.
"""
from .exceptions import AuthenticationRejected, ConfigurationError, UsageError
from .models import (
    ADMIN_ROLE,
    AuthScheme,
    CredentialAccount,
    IdentityAssertion,
    IssuedToken,
    PkceData,
    Principal,
    Session,
    SessionInfo,
    User,
)

__all__ = [
    "ADMIN_ROLE",
    "AuthScheme",
    "AuthenticationRejected",
    "ConfigurationError",
    "CredentialAccount",
    "IdentityAssertion",
    "IssuedToken",
    "PkceData",
    "Principal",
    "Session",
    "SessionInfo",
    "UsageError",
    "User",
]
