"""
Local credential login.

Username/password accounts verified with bcrypt, and stateless HS256
bearer tokens minted and verified with Authlib. No server-side record of
issued tokens exists; a valid signature and unexpired claims are enough.
"""

import logging
import time
from datetime import timedelta
from functools import lru_cache
from typing import Any, Dict, Optional
from uuid import uuid4

import bcrypt
from authlib.jose import JsonWebToken
from authlib.jose.errors import JoseError

from .exceptions import ConfigurationError, UsageError
from .models import CredentialAccount, IssuedToken, ADMIN_ROLE, ROLE_MAX_LENGTH
from .repositories import CredentialAccountRepository
from .utils import normalize_username, utcnow

logger = logging.getLogger(__name__)

BCRYPT_WORK_FACTOR = 11
BCRYPT_MAX_PASSWORD_BYTES = 72
JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    """
    Hash a password with bcrypt.

    Raises:
        UsageError: If the password is blank or longer than bcrypt accepts
    """
    if not password or not password.strip():
        raise UsageError("Password cannot be empty")
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
        raise UsageError(f"Password cannot exceed {BCRYPT_MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=BCRYPT_WORK_FACTOR)).decode("ascii")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """
    Check a password against a stored bcrypt hash.

    A blank or malformed hash never verifies; it does not raise.

    Raises:
        UsageError: If the password is blank
    """
    if not password or not password.strip():
        raise UsageError("Password cannot be empty")
    if not password_hash or not password_hash.strip():
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Invalid hash format (or a password bcrypt refuses)
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("dummy-password-for-timing")


def _require(value: Optional[str], name: str) -> str:
    if value is None or not str(value).strip():
        raise ConfigurationError(f"{name} is not configured")
    return value


class CredentialTokenVerifier:
    """
    Stateless bearer token check.

    Signature, issuer, audience and expiry are all required; there is no
    clock skew tolerance.
    """

    def __init__(self, secret: str, issuer: str, audience: str):
        self._secret = _require(secret, "JWT_SECRET")
        self._issuer = _require(issuer, "JWT_ISSUER")
        self._audience = _require(audience, "JWT_AUDIENCE")
        self._jwt = JsonWebToken([JWT_ALGORITHM])

    def verify(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Verify a bearer token.

        Returns:
            The token claims, or None if the token is invalid or expired
        """
        try:
            claims = self._jwt.decode(
                token,
                self._secret,
                claims_options={
                    "iss": {"essential": True, "value": self._issuer},
                    "aud": {"essential": True, "value": self._audience},
                    "exp": {"essential": True},
                    "sub": {"essential": True},
                },
            )
            claims.validate(now=int(time.time()), leeway=0)
        except JoseError as e:
            logger.debug(f"Bearer token rejected: {e}")
            return None
        return dict(claims)


class CredentialService:
    """
    Username/password login that issues signed bearer tokens.

    Also owns account registration and deactivation.
    """

    def __init__(
        self,
        account_repo: CredentialAccountRepository,
        secret: str,
        issuer: str,
        audience: str,
        token_lifetime: timedelta = timedelta(hours=24),
    ):
        self._account_repo = account_repo
        self._secret = _require(secret, "JWT_SECRET")
        self._issuer = _require(issuer, "JWT_ISSUER")
        self._audience = _require(audience, "JWT_AUDIENCE")
        self._token_lifetime = token_lifetime
        self._jwt = JsonWebToken([JWT_ALGORITHM])

    async def login(self, username: str, password: str) -> Optional[IssuedToken]:
        """
        Verify credentials and mint a bearer token.

        Unknown user, inactive account and wrong password all return None.

        Raises:
            UsageError: If username or password is blank, or the role is blank or too long
        """
        if not username or not username.strip():
            raise UsageError("Username cannot be empty")
        if not password or not password.strip():
            raise UsageError("Password cannot be empty")

        normalized = normalize_username(username)
        account = await self._account_repo.get_by_username(normalized)

        if account is None:
            # Burn comparable time so absent users are not distinguishable
            verify_password(password, _dummy_hash())
            logger.info("Credential login failed")
            return None

        if not verify_password(password, account.password_hash) or not account.is_active:
            logger.info("Credential login failed")
            return None

        token, expires_at = self._generate_token(account)
        logger.info(f"Issued bearer token for account {account.id}")
        return IssuedToken(token=token, username=account.username, expires_at=expires_at)

    def _generate_token(self, account: CredentialAccount):
        now = utcnow()
        expires_at = now + self._token_lifetime
        payload = {
            "sub": str(account.id),
            "unique_name": account.username,
            "role": account.role,
            "jti": str(uuid4()),
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "iss": self._issuer,
            "aud": self._audience,
        }
        header = {"alg": JWT_ALGORITHM, "typ": "JWT"}
        token = self._jwt.encode(header, payload, self._secret).decode("ascii")
        return token, expires_at

    async def register(self, username: str, password: str, role: str = ADMIN_ROLE) -> CredentialAccount:
        """
        Create a credential account.

        Raises:
            UsageError: If username or password is blank, or the role is blank or too long
            CredentialAccountExistsError: If the username is taken
        """
        if not username or not username.strip():
            raise UsageError("Username cannot be empty")
        if not role or not role.strip() or len(role) > ROLE_MAX_LENGTH:
            raise UsageError(f"Role must be 1 to {ROLE_MAX_LENGTH} characters")

        account = CredentialAccount(
            id=uuid4(),
            username=normalize_username(username),
            password_hash=hash_password(password),
            role=role,
            is_active=True,
            created_at=utcnow(),
        )
        await self._account_repo.create(account)
        logger.info(f"Registered credential account {account.id} with role {role}")
        return account

    async def deactivate(self, username: str) -> bool:
        """
        Deactivate an account so it can no longer log in.

        Returns:
            True if the account existed
        """
        account = await self._account_repo.get_by_username(normalize_username(username))
        if account is None:
            return False
        if account.is_active:
            account.is_active = False
            account.updated_at = utcnow()
            await self._account_repo.update(account)
            logger.info(f"Deactivated credential account {account.id}")
        return True
