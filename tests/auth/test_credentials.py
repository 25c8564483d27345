"""Tests for password hashing, credential login and bearer tokens."""

import time
from datetime import timedelta

import bcrypt
import pytest
import pytest_asyncio
from authlib.jose import JsonWebToken

from product_catalog.auth.credentials import (
    BCRYPT_WORK_FACTOR,
    CredentialService,
    CredentialTokenVerifier,
    hash_password,
    verify_password,
)
from product_catalog.auth.exceptions import ConfigurationError, UsageError
from product_catalog.auth.repositories import (
    CredentialAccountExistsError,
    InMemoryCredentialAccountRepository,
)
from tests.helpers.auth_fakes import TEST_JWT_AUDIENCE, TEST_JWT_ISSUER, TEST_JWT_SECRET


@pytest.fixture
def account_repo():
    return InMemoryCredentialAccountRepository()


@pytest.fixture
def credential_service(account_repo):
    return CredentialService(
        account_repo,
        secret=TEST_JWT_SECRET,
        issuer=TEST_JWT_ISSUER,
        audience=TEST_JWT_AUDIENCE,
        token_lifetime=timedelta(hours=24),
    )


@pytest.fixture
def verifier():
    return CredentialTokenVerifier(TEST_JWT_SECRET, TEST_JWT_ISSUER, TEST_JWT_AUDIENCE)


@pytest_asyncio.fixture
async def admin_account(credential_service):
    return await credential_service.register("  Admin  ", "correct horse battery")


def _encode(claims, secret=TEST_JWT_SECRET):
    return JsonWebToken(["HS256"]).encode({"alg": "HS256", "typ": "JWT"}, claims, secret).decode("ascii")


def _claims(**overrides):
    now = int(time.time())
    claims = {
        "sub": "00000000-0000-0000-0000-000000000001",
        "unique_name": "admin",
        "role": "admin",
        "jti": "jti-1",
        "iat": now,
        "exp": now + 3600,
        "iss": TEST_JWT_ISSUER,
        "aud": TEST_JWT_AUDIENCE,
    }
    claims.update(overrides)
    return claims


class TestPasswordHashing:
    """Tests for hash_password / verify_password."""

    def test_hash_uses_bcrypt_cost_11(self):
        hashed = hash_password("s3cret-password")
        assert hashed.startswith(f"$2b${BCRYPT_WORK_FACTOR}$")

    def test_round_trip(self):
        hashed = hash_password("s3cret-password")
        assert verify_password("s3cret-password", hashed) is True
        assert verify_password("wrong-password", hashed) is False

    def test_salted(self):
        assert hash_password("same") != hash_password("same")

    @pytest.mark.parametrize("password", ["", "   "])
    def test_blank_password_cannot_be_hashed(self, password):
        with pytest.raises(UsageError):
            hash_password(password)

    def test_overlong_password_cannot_be_hashed(self):
        with pytest.raises(UsageError):
            hash_password("x" * 73)

    def test_blank_password_cannot_be_verified(self):
        with pytest.raises(UsageError):
            verify_password("", hash_password("anything"))

    @pytest.mark.parametrize("stored", [None, "", "   ", "not-a-bcrypt-hash", "$2b$11$short"])
    def test_malformed_hash_is_false_not_error(self, stored):
        assert verify_password("anything", stored) is False

    def test_accepts_hash_from_other_bcrypt_writer(self):
        """Hashes produced elsewhere at a different cost still verify."""
        stored = bcrypt.hashpw(b"legacy-password", bcrypt.gensalt(rounds=4)).decode("ascii")
        assert verify_password("legacy-password", stored) is True


class TestLogin:
    """Tests for CredentialService.login."""

    @pytest.mark.asyncio
    async def test_register_normalizes_username(self, admin_account):
        assert admin_account.username == "admin"
        assert admin_account.role == "admin"
        assert admin_account.is_active is True

    @pytest.mark.asyncio
    async def test_duplicate_register_rejected(self, credential_service, admin_account):
        with pytest.raises(CredentialAccountExistsError):
            await credential_service.register("ADMIN", "another password")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", ["", "   ", "r" * 33])
    async def test_register_rejects_bad_role(self, credential_service, role):
        with pytest.raises(UsageError):
            await credential_service.register("editor", "long enough password", role=role)

    @pytest.mark.asyncio
    async def test_register_accepts_role_at_column_limit(self, credential_service):
        account = await credential_service.register("editor", "long enough password", role="r" * 32)
        assert account.role == "r" * 32

    @pytest.mark.asyncio
    async def test_login_is_case_insensitive(self, credential_service, verifier, admin_account):
        issued = await credential_service.login("  ADMIN ", "correct horse battery")

        assert issued is not None
        assert issued.username == "admin"
        claims = verifier.verify(issued.token)
        assert claims["sub"] == str(admin_account.id)
        assert claims["unique_name"] == "admin"
        assert claims["role"] == "admin"
        assert claims["iss"] == TEST_JWT_ISSUER
        assert claims["aud"] == TEST_JWT_AUDIENCE
        assert claims["jti"]

    @pytest.mark.asyncio
    async def test_token_lifetime(self, credential_service, verifier, admin_account):
        issued = await credential_service.login("admin", "correct horse battery")
        claims = verifier.verify(issued.token)

        assert claims["exp"] - claims["iat"] == 24 * 3600
        assert int(issued.expires_at.timestamp()) == claims["exp"]

    @pytest.mark.asyncio
    async def test_each_token_has_unique_jti(self, credential_service, verifier, admin_account):
        a = await credential_service.login("admin", "correct horse battery")
        b = await credential_service.login("admin", "correct horse battery")
        assert verifier.verify(a.token)["jti"] != verifier.verify(b.token)["jti"]

    @pytest.mark.asyncio
    async def test_failures_are_indistinguishable(self, credential_service, admin_account):
        """Unknown user, wrong password and inactive account all return None."""
        assert await credential_service.login("nobody", "correct horse battery") is None
        assert await credential_service.login("admin", "wrong password") is None

        await credential_service.deactivate("Admin")
        assert await credential_service.login("admin", "correct horse battery") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username,password", [("", "pw"), ("   ", "pw"), ("admin", ""), ("admin", "  ")])
    async def test_blank_input_is_usage_error(self, credential_service, username, password):
        with pytest.raises(UsageError):
            await credential_service.login(username, password)

    @pytest.mark.asyncio
    async def test_deactivate_unknown_account(self, credential_service):
        assert await credential_service.deactivate("ghost") is False

    @pytest.mark.asyncio
    async def test_deactivate_persists(self, credential_service, account_repo, admin_account):
        assert await credential_service.deactivate("admin") is True
        stored = await account_repo.get_by_username("admin")
        assert stored.is_active is False
        assert stored.updated_at is not None


class TestConfiguration:
    """Missing secrets fail loudly."""

    @pytest.mark.parametrize("secret,issuer,audience", [
        (None, TEST_JWT_ISSUER, TEST_JWT_AUDIENCE),
        (TEST_JWT_SECRET, "", TEST_JWT_AUDIENCE),
        (TEST_JWT_SECRET, TEST_JWT_ISSUER, "  "),
    ])
    def test_missing_values_raise(self, account_repo, secret, issuer, audience):
        with pytest.raises(ConfigurationError):
            CredentialService(account_repo, secret=secret, issuer=issuer, audience=audience)
        with pytest.raises(ConfigurationError):
            CredentialTokenVerifier(secret, issuer, audience)


class TestTokenVerifier:
    """Tests for CredentialTokenVerifier."""

    def test_valid_token(self, verifier):
        assert verifier.verify(_encode(_claims()))["unique_name"] == "admin"

    def test_expired_token_rejected_without_leeway(self, verifier):
        now = int(time.time())
        assert verifier.verify(_encode(_claims(iat=now - 120, exp=now - 1))) is None

    def test_wrong_issuer_rejected(self, verifier):
        assert verifier.verify(_encode(_claims(iss="someone-else"))) is None

    def test_wrong_audience_rejected(self, verifier):
        assert verifier.verify(_encode(_claims(aud="someone-else"))) is None

    def test_wrong_secret_rejected(self, verifier):
        assert verifier.verify(_encode(_claims(), secret="a-different-secret-of-decent-length")) is None

    def test_missing_exp_rejected(self, verifier):
        claims = _claims()
        del claims["exp"]
        assert verifier.verify(_encode(claims)) is None

    def test_garbage_rejected(self, verifier):
        assert verifier.verify("not.a.token") is None
        assert verifier.verify("") is None
