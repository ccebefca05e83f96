"""Pydantic schemas for API request/response validation."""

from app.schemas.auth import (
    AuthResponse,
    CompanyDto,
    CompanyLoginRequest,
    CompanyRegisterRequest,
    LoginRequest,
    LogoutAllResponse,
    MessageResponse,
    RefreshTokenRequest,
    RegisterRequest,
    UserDto,
)

__all__ = [
    "AuthResponse",
    "CompanyDto",
    "CompanyLoginRequest",
    "CompanyRegisterRequest",
    "LoginRequest",
    "LogoutAllResponse",
    "MessageResponse",
    "RefreshTokenRequest",
    "RegisterRequest",
    "UserDto",
]
