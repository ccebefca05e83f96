"""Authentication endpoints."""

import logging
from typing import Any, Dict, List, Union

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import ValidationError

from app.core.dependencies import (
    AuthServiceDep,
    CurrentClaims,
    CurrentPrincipal,
    DbSession,
    RateLimiterDep,
)
from app.core.exceptions import Conflict, CorruptToken, Unauthenticated
from app.core.rate_limiter import RateLimiter, get_client_ip
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

logger = logging.getLogger(__name__)
router = APIRouter()

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def check_rate_limit(limiter: RateLimiter, limit_type: str, identifier: str) -> None:
    """Check rate limit and raise HTTPException if exceeded."""
    allowed, retry_after = limiter.is_allowed(limit_type, identifier)
    if not allowed:
        logger.warning(f"Rate limit exceeded for {limit_type}: {identifier[:20]}...")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many requests. Please try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )


def invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def validation_details(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]


# ─────────────────────────────────────────────
# Login
# ─────────────────────────────────────────────

@router.post("/login", response_model=AuthResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    db: DbSession,
    auth_service: AuthServiceDep,
    limiter: RateLimiterDep,
):
    """
    Authenticate a user (or a company by email).
    Returns access and refresh tokens.
    """
    client_ip = get_client_ip(request)
    check_rate_limit(limiter, "auth_login", client_ip)

    try:
        return await auth_service.login(db, credentials.username, credentials.password, client_ip)
    except Unauthenticated:
        raise invalid_credentials()


@router.post("/company-login", response_model=AuthResponse)
async def company_login(
    credentials: CompanyLoginRequest,
    request: Request,
    db: DbSession,
    auth_service: AuthServiceDep,
    limiter: RateLimiterDep,
):
    """Authenticate a company by email."""
    client_ip = get_client_ip(request)
    check_rate_limit(limiter, "auth_login", client_ip)

    try:
        return await auth_service.login_company(
            db, credentials.email, credentials.password, client_ip
        )
    except Unauthenticated:
        raise invalid_credentials()


# ─────────────────────────────────────────────
# Register
# ─────────────────────────────────────────────

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: RegisterRequest,
    request: Request,
    db: DbSession,
    auth_service: AuthServiceDep,
    limiter: RateLimiterDep,
):
    """
    Register a new user.
    Returns access and refresh tokens.
    """
    check_rate_limit(limiter, "auth_register", get_client_ip(request))

    try:
        return await auth_service.register_user(db, user_data)
    except Conflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post(
    "/company-register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED
)
async def company_register(
    request: Request,
    db: DbSession,
    auth_service: AuthServiceDep,
    limiter: RateLimiterDep,
):
    """
    Register a new company.
    Accepts JSON or form fields: name, email, password, cui, category, description.
    """
    check_rate_limit(limiter, "auth_register", get_client_ip(request))

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        payload: Any = {key: value for key, value in form.items() if isinstance(value, str)}
    else:
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")

    try:
        company_data = CompanyRegisterRequest.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=validation_details(e))

    try:
        return await auth_service.register_company(db, company_data)
    except Conflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


# ─────────────────────────────────────────────
# Refresh Token (Rotation)
# ─────────────────────────────────────────────

@router.post("/refresh", response_model=AuthResponse)
async def refresh_token(
    body: RefreshTokenRequest,
    request: Request,
    db: DbSession,
    auth_service: AuthServiceDep,
    limiter: RateLimiterDep,
):
    """
    Rotate refresh token and get a new access token + refresh token.
    """
    client_ip = get_client_ip(request)
    check_rate_limit(limiter, "auth_refresh", client_ip)

    try:
        return await auth_service.refresh(db, body.refresh_token, client_ip)
    except Unauthenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )
    except CorruptToken:
        logger.exception("Token refresh error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred during token refresh",
        )


# ─────────────────────────────────────────────
# Logout
# ─────────────────────────────────────────────

@router.post("/logout", response_model=MessageResponse)
async def logout(
    body: RefreshTokenRequest,
    request: Request,
    claims: CurrentClaims,
    db: DbSession,
    auth_service: AuthServiceDep,
):
    """Revoke a refresh token. Succeeds whether or not it was still active."""
    revoked = await auth_service.logout(db, body.refresh_token, get_client_ip(request))
    if not revoked:
        logger.info(f"Logout for subject {claims.get('sub')} found no active refresh token")
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=LogoutAllResponse)
async def logout_all(
    request: Request,
    claims: CurrentClaims,
    db: DbSession,
    auth_service: AuthServiceDep,
):
    """Revoke every active refresh token of the caller."""
    try:
        owner = auth_service.owner_from_claims(claims)
    except Unauthenticated:
        raise invalid_credentials()

    revoked = await auth_service.logout_all(db, owner, get_client_ip(request))
    return LogoutAllResponse(message="Logged out from all sessions", revoked=revoked)


# ─────────────────────────────────────────────
# Current Principal
# ─────────────────────────────────────────────

@router.get("/me", response_model=Union[UserDto, CompanyDto])
async def get_current_account(principal: CurrentPrincipal):
    """Return the authenticated user's or company's profile."""
    return principal.to_dto()
