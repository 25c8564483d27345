# config.py

"""Configuration for the Product Catalog API."""

import os
from typing import FrozenSet, Optional

from dotenv import load_dotenv

from product_catalog.auth.exceptions import ConfigurationError

load_dotenv()

# --- DATABASE ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./product_catalog.db")

# --- API ---
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# --- LOGGING ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# --- GOOGLE OAUTH ---
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")

# --- FRONTEND ---
FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")

# Comma-separated list of emails granted the admin role on login
ADMIN_EMAILS = os.getenv("ADMIN_EMAILS", "")

# --- SESSIONS ---
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "product_catalog_session")
SESSION_EXPIRATION_HOURS = int(os.getenv("SESSION_EXPIRATION_HOURS", "8"))
SESSION_SWEEP_INTERVAL_MINUTES = int(os.getenv("SESSION_SWEEP_INTERVAL_MINUTES", "60"))

# --- CREDENTIAL TOKENS (JWT) ---
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ISSUER = os.getenv("JWT_ISSUER")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))


def parse_admin_emails(raw: Optional[str]) -> FrozenSet[str]:
    """Parse a comma-separated allow-list into a lower-cased set."""
    if not raw:
        return frozenset()
    return frozenset(e.strip().lower() for e in raw.split(",") if e.strip())


class Settings:
    """
    Settings class for configuration.

    Defaults come from the module-level environment values; tests pass
    overrides as keyword arguments.
    """

    def __init__(self, **overrides):
        self.DATABASE_URL = DATABASE_URL
        self.API_HOST = API_HOST
        self.API_PORT = API_PORT
        self.APP_VERSION = APP_VERSION
        self.ENVIRONMENT = ENVIRONMENT
        self.LOG_LEVEL = LOG_LEVEL
        self.LOG_FORMAT = LOG_FORMAT
        self.GOOGLE_CLIENT_ID = GOOGLE_CLIENT_ID
        self.GOOGLE_CLIENT_SECRET = GOOGLE_CLIENT_SECRET
        self.FRONTEND_BASE_URL = FRONTEND_BASE_URL
        self.ADMIN_EMAILS = parse_admin_emails(ADMIN_EMAILS)
        self.SESSION_COOKIE_NAME = SESSION_COOKIE_NAME
        self.SESSION_EXPIRATION_HOURS = SESSION_EXPIRATION_HOURS
        self.SESSION_SWEEP_INTERVAL_MINUTES = SESSION_SWEEP_INTERVAL_MINUTES
        self.JWT_SECRET = JWT_SECRET
        self.JWT_ISSUER = JWT_ISSUER
        self.JWT_AUDIENCE = JWT_AUDIENCE
        self.JWT_EXPIRATION_HOURS = JWT_EXPIRATION_HOURS

        for name, value in overrides.items():
            if not hasattr(self, name):
                raise AttributeError(f"Unknown setting: {name}")
            if name == "ADMIN_EMAILS":
                if isinstance(value, str):
                    value = parse_admin_emails(value)
                else:
                    value = frozenset(e.strip().lower() for e in value if e.strip())
            setattr(self, name, value)

    def require(self, name: str) -> str:
        """
        Return a mandatory setting or fail loudly.

        Raises:
            ConfigurationError: If the setting is missing or blank
        """
        value = getattr(self, name, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ConfigurationError(f"{name} is not configured")
        return value

    @property
    def frontend_is_local(self) -> bool:
        """True when the frontend is served from a local development host."""
        return "localhost" in self.FRONTEND_BASE_URL.lower() or "127.0.0.1" in self.FRONTEND_BASE_URL


# Global settings instance
settings = Settings()
