"""
Authentication utilities.

Helper functions for auth system.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    CRITICAL: All datetime operations must use timezone-aware datetimes.
    Session expiry comparisons depend on it.

    Returns:
        datetime: Current UTC time with timezone info

    Example:
        >>> now = utcnow()
        >>> now.tzinfo is not None
        True
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime read back from storage to aware UTC.

    SQLite drops tzinfo on round-trip; values are always written as UTC,
    so a naive value is UTC by construction.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_username(username: str) -> str:
    """Trim and lower-case a username for storage and lookup."""
    return username.strip().lower()
