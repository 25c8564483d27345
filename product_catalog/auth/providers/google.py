"""Google OAuth provider."""

from typing import Optional
import logging

import httpx
from authlib.jose.errors import JoseError

from product_catalog.auth.id_token import IdTokenValidator, JWKSCache
from product_catalog.auth.models import IdentityAssertion
from .base import OAuthProvider, OAuthConfig

logger = logging.getLogger(__name__)


def create_google_config(client_id: str, client_secret: str) -> OAuthConfig:
    """Create Google OAuth configuration."""
    return OAuthConfig(
        client_id=client_id,
        client_secret=client_secret,
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        jwks_url="https://www.googleapis.com/oauth2/v3/certs",
        issuers=["https://accounts.google.com", "accounts.google.com"],
        scopes=["openid", "profile", "email"],
    )


class GoogleOAuthProvider(OAuthProvider):
    """Google OAuth 2.0 provider with PKCE and ID token validation."""

    def __init__(
        self,
        config: OAuthConfig,
        http_client: httpx.AsyncClient,
        id_token_validator: Optional[IdTokenValidator] = None,
    ):
        super().__init__(config, http_client)
        self._validator = id_token_validator or IdTokenValidator(
            JWKSCache(config.jwks_url, http_client),
            audience=config.client_id,
            issuers=config.issuers,
        )

    @property
    def provider_name(self) -> str:
        return "google"

    def _get_extra_auth_params(self) -> dict:
        """Add Google-specific auth params."""
        return {
            "access_type": "offline",
            "prompt": "consent",
        }

    async def exchange_code(
        self, code: str, code_verifier: str, redirect_uri: str
    ) -> Optional[IdentityAssertion]:
        """
        Exchange authorization code for a validated Google identity.

        Provider refusal and invalid ID tokens return None. Anything else
        (JWKS unreachable, malformed responses) is re-raised.
        """
        try:
            data = await self._post_token_request(code, code_verifier, redirect_uri)
            if data is None:
                return None

            id_token = data.get("id_token")
            if not id_token:
                logger.warning("Token exchange returned null or empty ID token")
                return None

            claims = await self._validator.validate(id_token)
        except JoseError as e:
            logger.warning(f"Invalid Google token provided: {e}")
            return None
        except Exception:
            logger.exception("Critical error validating Google token")
            raise

        return IdentityAssertion(
            subject_id=claims["sub"],
            email=claims["email"],
            display_name=claims.get("name") or claims["email"],
            picture_url=claims.get("picture"),
            email_verified=bool(claims.get("email_verified", False)),
        )
