"""
Refresh token ledger: single-use rotation and revocation.

A refresh token moves Active -> Revoked exactly once. The revoke step is a
compare-and-set ``UPDATE ... WHERE is_revoked = false`` issued after a
``SELECT ... FOR UPDATE``, so two concurrent rotations of the same value
cannot both succeed even on backends that ignore row locks (SQLite).
"""

import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utcnow
from app.core.exceptions import CorruptToken, InvalidRefreshToken
from app.models.refresh_token import OwnerRef, PrincipalKind, RefreshToken
from app.services.credential_store import CredentialStore
from app.services.principals import Principal, principal_for
from app.services.token_service import IssuedTokens, TokenIssuer

logger = logging.getLogger(__name__)


def token_prefix(value: str) -> str:
    """Log-safe handle for a refresh token."""
    return f"{value[:8]}..."


class RefreshTokenLedger:
    """Persisted refresh tokens: lookup, rotation, revocation."""

    def __init__(self, issuer: TokenIssuer, store: CredentialStore, clock: Clock = utcnow):
        self._issuer = issuer
        self._store = store
        self._clock = clock

    @staticmethod
    async def find(db: AsyncSession, token_value: str) -> Optional[RefreshToken]:
        result = await db.execute(
            select(RefreshToken)
            .where(RefreshToken.token == token_value)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _mark_revoked(
        db: AsyncSession, record: RefreshToken, now: datetime, client_ip: str
    ) -> bool:
        """Flip the row to revoked if nobody else has. True if this call won."""
        result = await db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == record.id, RefreshToken.is_revoked == False)  # noqa: E712
            .values(is_revoked=True, revoked_at=now, revoked_by_ip=client_ip)
        )
        return result.rowcount == 1

    async def _resolve_owner(self, db: AsyncSession, record: RefreshToken) -> Principal:
        try:
            owner = record.owner
        except CorruptToken:
            logger.error(f"Refresh token {record.id} has no resolvable owner")
            raise

        if owner.kind is PrincipalKind.USER:
            account = await self._store.get_user(db, owner.id)
        else:
            account = await self._store.get_company(db, owner.id)

        if account is None:
            logger.error(
                f"Refresh token {record.id} points at missing {owner.kind.value} {owner.id}"
            )
            raise CorruptToken(f"owner {owner.kind.value} {owner.id} not found")
        if not account.is_active:
            logger.warning(
                f"Refresh rejected: {owner.kind.value} {owner.id} is inactive"
            )
            raise InvalidRefreshToken()
        return principal_for(account)

    async def rotate(
        self, db: AsyncSession, token_value: str, client_ip: str
    ) -> Tuple[Principal, IssuedTokens]:
        """
        Revoke ``token_value`` and issue its replacement in the same transaction.

        Raises:
            InvalidRefreshToken: unknown, revoked, expired or concurrently rotated.
            CorruptToken: the token row has no resolvable owner.
        """
        now = self._clock()
        record = await self.find(db, token_value)

        if record is None:
            logger.warning(
                f"Refresh failed: unknown token {token_prefix(token_value)}, IP: {client_ip}"
            )
            raise InvalidRefreshToken()

        if not record.is_active(now):
            logger.warning(
                f"Refresh failed: inactive token {token_prefix(token_value)} "
                f"(revoked={record.is_revoked}, expires_at={record.expires_at.isoformat()}), "
                f"IP: {client_ip}"
            )
            raise InvalidRefreshToken()

        if not await self._mark_revoked(db, record, now, client_ip):
            logger.warning(
                f"Refresh failed: token {token_prefix(token_value)} was rotated concurrently, "
                f"IP: {client_ip}"
            )
            raise InvalidRefreshToken()

        principal = await self._resolve_owner(db, record)
        issued = await self._issuer.issue(db, principal)

        record.replaced_by_token = issued.refresh_token
        await db.flush()

        logger.info(
            f"Tokens refreshed for {principal.kind.value} {principal.account.id} "
            f"from IP: {client_ip}"
        )
        return principal, issued

    async def revoke(self, db: AsyncSession, token_value: str, client_ip: str) -> bool:
        """Revoke an active token. False if unknown or already inactive."""
        now = self._clock()
        record = await self.find(db, token_value)
        if record is None or not record.is_active(now):
            return False

        revoked = await self._mark_revoked(db, record, now, client_ip)
        if revoked:
            logger.info(
                f"Refresh token {token_prefix(token_value)} revoked "
                f"(user_id={record.user_id}, company_id={record.company_id}) from IP: {client_ip}"
            )
        return revoked

    async def revoke_all(self, db: AsyncSession, owner: OwnerRef, client_ip: str) -> int:
        """Revoke every active token of ``owner``. Returns how many were revoked."""
        now = self._clock()
        owner_column = (
            RefreshToken.user_id if owner.kind is PrincipalKind.USER else RefreshToken.company_id
        )
        result = await db.execute(
            update(RefreshToken)
            .where(
                owner_column == owner.id,
                RefreshToken.is_revoked == False,  # noqa: E712
                RefreshToken.expires_at > now,
            )
            .values(is_revoked=True, revoked_at=now, revoked_by_ip=client_ip)
        )
        logger.info(
            f"Revoked {result.rowcount} refresh tokens for {owner.kind.value} {owner.id}"
        )
        return result.rowcount
