"""FastAPI dependencies: database session, auth service and bearer claims."""

import logging
from typing import Annotated, Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound, Unauthenticated
from app.core.rate_limiter import RateLimiter
from app.db.session import get_db
from app.services.auth_service import AuthService
from app.services.principals import Principal

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]


def unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]


def get_current_claims(
    auth_service: AuthServiceDep,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> Dict[str, Any]:
    """Validate the bearer access token and return its claims."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise unauthorized()
    try:
        return auth_service.issuer.decode_access_token(credentials.credentials)
    except Unauthenticated:
        raise unauthorized("Invalid or expired token")


CurrentClaims = Annotated[Dict[str, Any], Depends(get_current_claims)]


async def get_current_principal(
    claims: CurrentClaims,
    db: DbSession,
    auth_service: AuthServiceDep,
) -> Principal:
    """Load the account behind the bearer token."""
    try:
        return await auth_service.resolve_claims(db, claims)
    except Unauthenticated:
        raise unauthorized("Invalid or expired token")
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
