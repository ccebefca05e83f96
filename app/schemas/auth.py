"""Auth request/response schemas (camelCase on the wire)."""

import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

PHONE_PATTERN = r"^\+?[0-9 ()\-]{7,20}$"
USERNAME_PATTERN = r"^[A-Za-z0-9_.\-]+$"


class CamelModel(BaseModel):
    """Base model: camelCase aliases, snake_case accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ─────────────────────────────────────────────
# Requests
# ─────────────────────────────────────────────

class LoginRequest(CamelModel):
    """Username or email plus password."""
    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class CompanyLoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(min_length=1, max_length=128)


class RegisterRequest(CamelModel):
    """Schema for individual registration."""
    # no "@": login treats any identifier containing one as an email
    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    phone_number: str = Field(pattern=PHONE_PATTERN)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        checks = [
            (r"[a-z]", "a lowercase letter"),
            (r"[A-Z]", "an uppercase letter"),
            (r"\d", "a digit"),
            (r"[^\da-zA-Z]", "a special character"),
        ]
        missing = [label for pattern, label in checks if not re.search(pattern, value)]
        if missing:
            raise ValueError(f"Password must contain {', '.join(missing)}")
        return value


class CompanyRegisterRequest(CamelModel):
    """Schema for company registration (JSON or form fields)."""
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    cui: Optional[int] = Field(None, ge=1)
    category: str = Field(min_length=1, max_length=100)
    description: str = Field("", max_length=2000)

    @field_validator("cui", mode="before")
    @classmethod
    def blank_cui_is_none(cls, value):
        # form submissions send "" for an empty field
        if isinstance(value, str) and not value.strip():
            return None
        return value


# ─────────────────────────────────────────────
# Responses
# ─────────────────────────────────────────────

class UserDto(CamelModel):
    id: int
    username: str
    first_name: str
    last_name: str
    email: str
    role: str = "User"
    scopes: List[str] = []


class CompanyDto(CamelModel):
    id: int
    name: str
    email: str
    description: str = ""
    cui: Optional[int] = None
    category: str = ""
    role: str = "Company"
    scopes: List[str] = []
    created_at: datetime
    is_active: bool


class AuthResponse(CamelModel):
    """Token pair plus exactly one of user/company."""
    access_token: str
    refresh_token: str
    expires_at: datetime
    user: Optional[UserDto] = None
    company: Optional[CompanyDto] = None


class MessageResponse(CamelModel):
    """Simple message response."""
    message: str


class LogoutAllResponse(CamelModel):
    message: str
    revoked: int
