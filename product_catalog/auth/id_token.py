"""ID token verification against the identity provider's JWKS."""

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, Optional

import httpx
from authlib.common.encoding import to_bytes
from authlib.jose import JsonWebKey, JsonWebToken
from authlib.jose.errors import DecodeError, JoseError
from authlib.jose.util import extract_header

logger = logging.getLogger(__name__)


class UnknownSigningKeyError(JoseError):
    """The token names a key id the provider does not publish."""
    error = "unknown_signing_key"


class JWKSCache:
    """
    Fetches and caches the provider's signing keys.

    Keys are refreshed when the TTL lapses or when a token names an
    unknown kid (provider key rotation).

    Attributes:
        jwks_url: URL to fetch JWKS from
        cache_ttl: Cache time-to-live in seconds (default: 3600 = 1 hour)
    """

    def __init__(self, jwks_url: str, http_client: httpx.AsyncClient, cache_ttl: int = 3600):
        self.jwks_url = jwks_url
        self.cache_ttl = cache_ttl
        self._http_client = http_client
        self._keys: Dict[str, Dict[str, Any]] = {}
        self._last_refresh: Optional[float] = None
        self._lock = asyncio.Lock()

    async def get_signing_key(self, kid: Optional[str]) -> Dict[str, Any]:
        """
        Get the JWK (as a dict) for a key id.

        Raises:
            UnknownSigningKeyError: If kid is not published after a refresh
            httpx.HTTPError: If the JWKS fetch fails
        """
        if self._needs_refresh():
            await self.refresh_keys()

        key = self._lookup(kid)
        if key is None:
            logger.warning(f"Key ID '{kid}' not found in cache, refreshing JWKS")
            await self.refresh_keys()
            key = self._lookup(kid)

        if key is None:
            raise UnknownSigningKeyError(description=f"Key ID '{kid}' not found in JWKS")
        return key

    def _lookup(self, kid: Optional[str]) -> Optional[Dict[str, Any]]:
        if kid is None:
            # A single published key may omit kid in the token header
            if len(self._keys) == 1:
                return next(iter(self._keys.values()))
            return None
        return self._keys.get(kid)

    async def refresh_keys(self) -> None:
        """
        Fetch the JWKS document and replace the cache.

        Raises:
            httpx.HTTPError: If HTTP request fails
            ValueError: If the response is not a JWKS document
        """
        async with self._lock:
            logger.info(f"Fetching JWKS from {self.jwks_url}")
            response = await self._http_client.get(self.jwks_url)
            response.raise_for_status()

            keys_list = response.json().get("keys")
            if not isinstance(keys_list, list):
                raise ValueError(f"JWKS response from {self.jwks_url} has no 'keys' list")

            new_keys: Dict[str, Dict[str, Any]] = {}
            for index, key_data in enumerate(keys_list):
                new_keys[key_data.get("kid") or f"_unnamed_{index}"] = key_data

            self._keys = new_keys
            self._last_refresh = time.monotonic()
            logger.info(f"JWKS cache refreshed with {len(new_keys)} keys")

    def _needs_refresh(self) -> bool:
        if self._last_refresh is None:
            return True
        return (time.monotonic() - self._last_refresh) > self.cache_ttl


class IdTokenValidator:
    """
    Verifies provider ID tokens locally with cached JWKS.

    Validates signature (RS256 only), issuer, audience, expiration and the
    presence of sub/email. Any JoseError raised from validate() means the
    token itself is bad; everything else is an infrastructure problem.
    """

    ALGORITHMS = ["RS256"]

    def __init__(
        self,
        jwks_cache: JWKSCache,
        audience: str,
        issuers: Iterable[str],
        leeway: int = 30,
    ):
        self.jwks_cache = jwks_cache
        self.audience = audience
        self.issuers = list(issuers)
        self.leeway = leeway
        self._jwt = JsonWebToken(self.ALGORITHMS)

    async def validate(self, id_token: str) -> Dict[str, Any]:
        """
        Verify an ID token and return its claims.

        Raises:
            JoseError: If the token is malformed, forged, expired or for
                another audience
            httpx.HTTPError: If the JWKS cannot be fetched
        """
        # Unverified header, read only to pick the signing key
        header = extract_header(to_bytes(id_token.split(".")[0]), DecodeError)
        key = JsonWebKey.import_key(await self.jwks_cache.get_signing_key(header.get("kid")))

        claims = self._jwt.decode(
            id_token,
            key,
            claims_options={
                "iss": {"essential": True, "values": self.issuers},
                "aud": {"essential": True, "value": self.audience},
                "exp": {"essential": True},
                "sub": {"essential": True},
                "email": {"essential": True},
            },
        )
        claims.validate(leeway=self.leeway)
        return dict(claims)
