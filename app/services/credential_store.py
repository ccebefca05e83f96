"""Credential store: account lookups, secret hashing and lockout accounting."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy import exists, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth_config import AuthConfig
from app.core.exceptions import Conflict
from app.models.company import Company
from app.models.user import User
from app.schemas.auth import CompanyRegisterRequest, RegisterRequest

logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Precomputed fake hash to mitigate timing attacks
FAKE_HASHED_PASSWORD = pwd_context.hash(
    "this_is_a_fake_account_that_never_exists_2025"
)


class CredentialStore:
    """Reads and writes the two account tables."""

    def __init__(self, config: AuthConfig):
        self._config = config

    # ─── Secrets ─────────────────────────────────
    @staticmethod
    async def hash_password(password: str) -> str:
        return await asyncio.to_thread(pwd_context.hash, password)

    @staticmethod
    async def verify_password(plain: str, hashed: Optional[str]) -> bool:
        """Verify against ``hashed``, or against a dummy hash when it is None."""
        valid = await asyncio.to_thread(
            pwd_context.verify, plain, hashed or FAKE_HASHED_PASSWORD
        )
        return valid and hashed is not None

    # ─── Lookups ─────────────────────────────────
    @staticmethod
    async def find_active_user(db: AsyncSession, identifier: str) -> Optional[User]:
        """Match by email when ``identifier`` contains "@", otherwise by username."""
        if "@" in identifier:
            match = User.email == identifier.lower()
        else:
            match = User.username == identifier
        result = await db.execute(
            select(User).where(match, User.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_active_company(db: AsyncSession, email: str) -> Optional[Company]:
        result = await db.execute(
            select(Company).where(
                Company.email == email.lower(),
                Company.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user(db: AsyncSession, user_id: int) -> Optional[User]:
        return await db.get(User, user_id)

    @staticmethod
    async def get_company(db: AsyncSession, company_id: int) -> Optional[Company]:
        return await db.get(Company, company_id)

    @staticmethod
    async def email_taken(db: AsyncSession, email: str) -> bool:
        """True if either account table already holds ``email``."""
        email = email.lower()
        result = await db.execute(
            select(
                or_(
                    exists().where(User.email == email),
                    exists().where(Company.email == email),
                )
            )
        )
        return bool(result.scalar())

    @staticmethod
    async def username_taken(db: AsyncSession, username: str) -> bool:
        result = await db.execute(select(exists().where(User.username == username)))
        return bool(result.scalar())

    @staticmethod
    async def cui_taken(db: AsyncSession, cui: int) -> bool:
        result = await db.execute(select(exists().where(Company.cui == cui)))
        return bool(result.scalar())

    # ─── Creation ────────────────────────────────
    async def create_user(self, db: AsyncSession, data: RegisterRequest) -> User:
        user = User(
            username=data.username,
            email=data.email.lower(),
            hashed_password=await self.hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            phone_number=data.phone_number,
            role="User",
            is_active=True,
            failed_login_attempts=0,
        )
        db.add(user)
        await self._flush_new_account(db, user)
        return user

    async def create_company(self, db: AsyncSession, data: CompanyRegisterRequest) -> Company:
        company = Company(
            name=data.name,
            email=data.email.lower(),
            hashed_password=await self.hash_password(data.password),
            cui=data.cui,
            category=data.category,
            description=data.description or "",
            is_active=True,
        )
        db.add(company)
        await self._flush_new_account(db, company)
        return company

    @staticmethod
    async def _flush_new_account(db: AsyncSession, account) -> None:
        # A concurrent registration can pass the existence checks and still lose on the unique index
        try:
            await db.flush()
        except IntegrityError as exc:
            logger.warning(f"Registration lost a uniqueness race: {exc.orig}")
            raise Conflict("Account already exists") from exc
        await db.refresh(account)

    # ─── Lockout accounting ──────────────────────
    async def record_failed_attempt(
        self, db: AsyncSession, user: User, now: datetime, client_ip: str
    ) -> None:
        # Increment in SQL so concurrent failures are all counted
        await db.execute(
            update(User)
            .where(User.id == user.id)
            .values(failed_login_attempts=User.failed_login_attempts + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        locked = await db.execute(
            update(User)
            .where(
                User.id == user.id,
                User.failed_login_attempts >= self._config.max_failed_attempts,
            )
            .values(locked_until=now + self._config.lockout_duration)
            .execution_options(synchronize_session=False)
        )

        # The caller is about to fail the request; persist the counter regardless
        await db.commit()
        await db.refresh(user)

        if locked.rowcount:
            logger.warning(
                f"Account locked after {user.failed_login_attempts} failed attempts. "
                f"UserId: {user.id}, IP: {client_ip}"
            )

    @staticmethod
    async def record_successful_login(
        db: AsyncSession, user: User, now: datetime, client_ip: str
    ) -> None:
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login_at = now
        user.last_login_ip = client_ip
        user.updated_at = now
        await db.flush()
