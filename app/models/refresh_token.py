"""Persisted, single-use refresh tokens and their owner reference."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.exceptions import CorruptToken
from app.db.session import Base, UTCDateTime


class PrincipalKind(str, Enum):
    """Which account table a principal lives in."""

    USER = "User"
    COMPANY = "Company"


@dataclass(frozen=True)
class OwnerRef:
    """Tagged reference to the single account owning a refresh token."""

    kind: PrincipalKind
    id: int


class RefreshToken(Base):
    """
    Opaque refresh token.

    Lifecycle: Active -> Revoked, or Active -> Expired (implicitly, by time).
    Rows are never deleted or reactivated; ``replaced_by_token`` links each
    rotated token to its successor for auditing.
    """

    __tablename__ = "refresh_tokens"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (company_id IS NULL)",
            name="ck_refresh_tokens_single_owner",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    jwt_id: Mapped[str] = mapped_column(String(36), index=True)

    # Owner: exactly one of these is set (see owner / for_owner)
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True, index=True
    )
    company_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("companies.id"), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    revoked_by_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    replaced_by_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    @classmethod
    def for_owner(
        cls,
        owner: OwnerRef,
        token: str,
        jwt_id: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> "RefreshToken":
        return cls(
            token=token,
            jwt_id=jwt_id,
            user_id=owner.id if owner.kind is PrincipalKind.USER else None,
            company_id=owner.id if owner.kind is PrincipalKind.COMPANY else None,
            created_at=created_at,
            expires_at=expires_at,
            is_revoked=False,
        )

    @property
    def owner(self) -> OwnerRef:
        """
        The owning account.

        Raises:
            CorruptToken: if neither or both owner columns are set.
        """
        if self.user_id is not None and self.company_id is None:
            return OwnerRef(PrincipalKind.USER, self.user_id)
        if self.company_id is not None and self.user_id is None:
            return OwnerRef(PrincipalKind.COMPANY, self.company_id)
        raise CorruptToken(
            f"refresh token {self.id} has user_id={self.user_id} company_id={self.company_id}"
        )

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_active(self, now: datetime) -> bool:
        return not self.is_revoked and not self.is_expired(now)

    def __repr__(self) -> str:
        return f"<RefreshToken(id={self.id}, jwt_id={self.jwt_id}, revoked={self.is_revoked})>"
