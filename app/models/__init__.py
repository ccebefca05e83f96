"""Database models."""

from app.models.user import User
from app.models.company import Company
from app.models.refresh_token import OwnerRef, PrincipalKind, RefreshToken

__all__ = [
    "User",
    "Company",
    "RefreshToken",
    "OwnerRef",
    "PrincipalKind",
]
