"""OAuth provider base interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode
import logging

import httpx

from product_catalog.auth.models import IdentityAssertion
from product_catalog.auth.pkce import CODE_CHALLENGE_METHOD

logger = logging.getLogger(__name__)


@dataclass
class OAuthConfig:
    """Configuration for an OAuth provider."""
    client_id: str
    client_secret: str
    authorize_url: str
    token_url: str
    jwks_url: str
    issuers: list[str]
    scopes: list[str]


class OAuthProvider(ABC):
    """
    Base class for PKCE authorization-code providers.

    Subclasses decide how the token response turns into an
    IdentityAssertion.
    """

    def __init__(self, config: OAuthConfig, http_client: httpx.AsyncClient):
        self.config = config
        self._http_client = http_client

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'google')."""
        ...

    def get_authorization_url(self, code_challenge: str, state: str, redirect_uri: str) -> str:
        """
        Get the OAuth authorization URL.

        Args:
            code_challenge: S256 PKCE challenge
            state: Random state parameter for CSRF protection
            redirect_uri: Callback URL registered with the provider

        Returns:
            Full authorization URL to redirect user to
        """
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.config.scopes),
            "code_challenge": code_challenge,
            "code_challenge_method": CODE_CHALLENGE_METHOD,
            "state": state,
        }
        params.update(self._get_extra_auth_params())
        return f"{self.config.authorize_url}?{urlencode(params)}"

    def _get_extra_auth_params(self) -> dict:
        """Override to add provider-specific auth params."""
        return {}

    @abstractmethod
    async def exchange_code(
        self, code: str, code_verifier: str, redirect_uri: str
    ) -> Optional[IdentityAssertion]:
        """
        Exchange an authorization code for a validated identity.

        Returns:
            IdentityAssertion, or None when the provider refused the code
            or returned a token that does not validate
        """
        ...

    async def _post_token_request(
        self, code: str, code_verifier: str, redirect_uri: str
    ) -> Optional[Dict[str, Any]]:
        """
        Make the token exchange request.

        Returns:
            JSON response from token endpoint, or None on a non-2xx status
        """
        data = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "code": code,
            "code_verifier": code_verifier,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }

        response = await self._http_client.post(
            self.config.token_url,
            data=data,
            headers={"Accept": "application/json"},
        )
        if not response.is_success:
            logger.error(
                f"{self.provider_name} token exchange failed with status code: {response.status_code}"
            )
            return None
        return response.json()
