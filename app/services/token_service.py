"""Token issuer: signed access tokens and persisted refresh tokens."""

import base64
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict

from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth_config import AuthConfig
from app.core.clock import Clock, utcnow
from app.core.exceptions import Unauthenticated
from app.models.refresh_token import PrincipalKind, RefreshToken
from app.services.principals import Principal

logger = logging.getLogger(__name__)

REFRESH_TOKEN_BYTES = 64


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    expires_at: datetime
    jwt_id: str
    record: RefreshToken


class TokenIssuer:
    """Mints access/refresh pairs for either principal kind."""

    def __init__(self, config: AuthConfig, clock: Clock = utcnow):
        self._config = config
        self._clock = clock

    # ─── Access tokens ───────────────────────────
    def create_access_token(
        self, principal: Principal, jwt_id: str, issued_at: datetime
    ) -> str:
        expires_at = issued_at + self._config.access_token_lifetime
        claims: Dict[str, Any] = {
            "sub": str(principal.account.id),
            "email": principal.email,
            "jti": jwt_id,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "iss": self._config.issuer,
            "aud": self._config.audience,
            "role": principal.kind.value,
            "scope": " ".join(principal.scopes),
        }
        claims.update(principal.extra_claims())
        return jwt.encode(claims, self._config.signing_key, algorithm=self._config.algorithm)

    def decode_access_token(self, token: str) -> Dict[str, Any]:
        """
        Validate an access token and return its claims.

        Signature, issuer and audience are checked by jose. Expiry is checked
        here against the injected clock with no leeway, and is mandatory.

        Raises:
            Unauthenticated: on any validation failure.
        """
        try:
            claims = jwt.decode(
                token,
                self._config.signing_key,
                algorithms=[self._config.algorithm],
                audience=self._config.audience,
                issuer=self._config.issuer,
                options={"verify_exp": False},
            )
        except JWTError as exc:
            logger.warning(f"JWT validation failed: {exc}")
            raise Unauthenticated("Invalid token") from exc

        # jose skips the audience check when the claim is absent
        if claims.get("aud") != self._config.audience:
            logger.warning("JWT validation failed: missing aud claim")
            raise Unauthenticated("Invalid token")

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)):
            logger.warning("JWT validation failed: missing exp claim")
            raise Unauthenticated("Invalid token")
        if self._clock().timestamp() >= exp:
            logger.info(f"JWT expired. jti: {claims.get('jti')}")
            raise Unauthenticated("Token expired")

        if not claims.get("sub") or claims.get("role") not in {k.value for k in PrincipalKind}:
            logger.warning(f"JWT validation failed: bad subject/role claims. jti: {claims.get('jti')}")
            raise Unauthenticated("Invalid token")
        return claims

    # ─── Refresh tokens ──────────────────────────
    @staticmethod
    def generate_refresh_token_value() -> str:
        return base64.b64encode(secrets.token_bytes(REFRESH_TOKEN_BYTES)).decode("ascii")

    # ─── Pair issuance ───────────────────────────
    async def issue(self, db: AsyncSession, principal: Principal) -> IssuedTokens:
        """Mint an access token and store a linked refresh token in ``db``."""
        now = self._clock()
        jwt_id = str(uuid.uuid4())

        access_token = self.create_access_token(principal, jwt_id, now)
        record = RefreshToken.for_owner(
            principal.owner,
            token=self.generate_refresh_token_value(),
            jwt_id=jwt_id,
            created_at=now,
            expires_at=now + self._config.refresh_token_lifetime,
        )
        db.add(record)
        await db.flush()

        return IssuedTokens(
            access_token=access_token,
            refresh_token=record.token,
            expires_at=now + self._config.access_token_lifetime,
            jwt_id=jwt_id,
            record=record,
        )
