"""
PKCE (RFC 7636) helpers for the authorization-code flow.

The verifier and state are drawn from the unreserved URL-safe alphabet
with the secrets module; the challenge is the S256 transform of the verifier.
"""
import base64
import hashlib
import secrets
import string

from .models import PkceData

UNRESERVED_CHARACTERS = string.ascii_letters + string.digits + "-._~"
CODE_VERIFIER_LENGTH = 64   # RFC 7636 allows 43..128
STATE_LENGTH = 32
CODE_CHALLENGE_METHOD = "S256"


def generate_random_string(length: int) -> str:
    """Return `length` characters chosen uniformly from the unreserved alphabet."""
    return "".join(secrets.choice(UNRESERVED_CHARACTERS) for _ in range(length))


def generate_code_challenge(code_verifier: str) -> str:
    """base64url(SHA-256(verifier)) without '=' padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_data() -> PkceData:
    """
    Generate the verifier/challenge/state triple for one login attempt.

    Returns:
        PkceData with a fresh verifier, its S256 challenge and an
        independent state nonce
    """
    code_verifier = generate_random_string(CODE_VERIFIER_LENGTH)
    return PkceData(
        code_verifier=code_verifier,
        code_challenge=generate_code_challenge(code_verifier),
        state=generate_random_string(STATE_LENGTH),
    )
