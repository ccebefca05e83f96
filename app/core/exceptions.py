"""Authentication error taxonomy.

Services raise these; routes translate them into HTTP responses.
"""


class AuthError(Exception):
    """Base class for authentication errors."""


class Unauthenticated(AuthError):
    """Credentials or token rejected. Always surfaced as a bare 401."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class InvalidRefreshToken(Unauthenticated):
    """Refresh token unknown, expired, revoked or already rotated."""

    def __init__(self, message: str = "Invalid or expired refresh token"):
        super().__init__(message)


class Conflict(AuthError):
    """Registration would duplicate an existing account."""


class NotFound(AuthError):
    """The principal named by a valid access token no longer exists."""


class CorruptToken(AuthError):
    """A stored refresh token has no resolvable owner."""


class ConfigurationError(RuntimeError):
    """Startup configuration is unusable."""
