"""Immutable authentication configuration built once at startup."""

import logging
from dataclasses import dataclass
from datetime import timedelta

from app.core.config import Settings
from app.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32


@dataclass(frozen=True)
class AuthConfig:
    """Signing material and policy knobs for the auth subsystem."""

    signing_key: str
    issuer: str
    audience: str
    algorithm: str = "HS256"
    access_token_lifetime: timedelta = timedelta(minutes=15)
    refresh_token_lifetime: timedelta = timedelta(days=7)
    max_failed_attempts: int = 5
    lockout_duration: timedelta = timedelta(minutes=30)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        """
        Build the config from application settings.

        Raises:
            ConfigurationError: if no signing key is configured.
        """
        secret = (settings.jwt_secret_key or "").strip()
        if not secret:
            raise ConfigurationError(
                "JWT_SECRET_KEY is not set; refusing to start without a signing key"
            )
        if len(secret) < MIN_SECRET_LENGTH:
            logger.warning(
                f"JWT signing key is shorter than {MIN_SECRET_LENGTH} characters"
            )

        return cls(
            signing_key=secret,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            algorithm=settings.jwt_algorithm,
            access_token_lifetime=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_token_lifetime=timedelta(days=settings.refresh_token_expire_days),
            max_failed_attempts=settings.max_failed_login_attempts,
            lockout_duration=timedelta(minutes=settings.lockout_minutes),
        )
