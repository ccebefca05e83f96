"""Services for business logic."""

from app.services.auth_service import AuthService, build_auth_service
from app.services.credential_store import CredentialStore
from app.services.refresh_token_service import RefreshTokenLedger
from app.services.token_service import TokenIssuer

__all__ = ["AuthService", "build_auth_service", "CredentialStore", "RefreshTokenLedger", "TokenIssuer"]
