"""Application configuration settings."""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "AcoomH API"
    app_env: str = "development"
    debug: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = "sqlite+aiosqlite:///./acoomh.db"

    # JWT Authentication (no default secret: the app refuses to start without one)
    jwt_secret_key: Optional[str] = None
    jwt_issuer: str = "AcoomH-API"
    jwt_audience: str = "AcoomH-App"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7

    # Account lockout (individual accounts only)
    max_failed_login_attempts: int = 5
    lockout_minutes: int = 30

    # Rate limiting for the anonymous auth endpoints
    rate_limit_enabled: bool = True
    auth_rate_limit_requests: int = 5
    auth_rate_limit_window_seconds: int = 60

    # CORS
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Security
    allowed_hosts: str = "*"
    # Peers whose X-Forwarded-For / X-Real-IP headers are believed
    trusted_proxies: str = "127.0.0.1,::1"

    @property
    def allowed_hosts_list(self) -> List[str]:
        """Get allowed hosts as a list."""
        return [host.strip() for host in self.allowed_hosts.split(",")]

    @property
    def trusted_proxies_list(self) -> List[str]:
        """Get trusted proxy addresses as a list."""
        return [proxy.strip() for proxy in self.trusted_proxies.split(",") if proxy.strip()]

    @property
    def environment(self) -> str:
        """Alias for app_env."""
        return self.app_env

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
