"""Authentication error taxonomy."""


class UsageError(ValueError):
    """
    Caller passed input that can never succeed (blank credentials, etc.).

    Raised before any I/O. Distinct from an authentication failure.
    """
    pass


class AuthenticationRejected(Exception):
    """
    Authentication was refused.

    The message is safe to return to the client; it never says which
    individual check failed beyond the fixed reason strings.
    """

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ConfigurationError(RuntimeError):
    """A required secret or identifier is missing from configuration."""
    pass
