"""OAuth providers."""
from .base import OAuthConfig, OAuthProvider
from .google import GoogleOAuthProvider, create_google_config

__all__ = [
    'OAuthConfig',
    'OAuthProvider',
    'GoogleOAuthProvider',
    'create_google_config',
]
