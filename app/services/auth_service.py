"""Authentication orchestrator: login, registration, refresh and logout for users and companies."""

import logging
from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth_config import AuthConfig
from app.core.clock import Clock, utcnow
from app.core.exceptions import Conflict, NotFound, Unauthenticated
from app.models.refresh_token import OwnerRef, PrincipalKind
from app.schemas.auth import AuthResponse, CompanyRegisterRequest, RegisterRequest
from app.services.credential_store import CredentialStore
from app.services.principals import CompanyPrincipal, IndividualPrincipal, Principal
from app.services.refresh_token_service import RefreshTokenLedger
from app.services.token_service import IssuedTokens, TokenIssuer

logger = logging.getLogger(__name__)


class AuthService:
    """
    Coordinates credential checks, lockout accounting and token issuance.

    Every credential-stage failure surfaces as the same ``Unauthenticated``
    error; only the logs say which stage failed.
    """

    def __init__(
        self,
        config: AuthConfig,
        store: CredentialStore,
        issuer: TokenIssuer,
        ledger: RefreshTokenLedger,
        clock: Clock = utcnow,
    ):
        self.config = config
        self.store = store
        self.issuer = issuer
        self.ledger = ledger
        self._clock = clock

    # ─── Credential resolution ──────────────────
    async def authenticate(
        self, db: AsyncSession, identifier: str, password: str, client_ip: str
    ) -> Principal:
        """Resolve credentials to a principal, trying individuals before companies."""
        user = await self.store.find_active_user(db, identifier)
        if user is not None:
            return await self._authenticate_individual(db, user, password, client_ip)

        return await self._authenticate_company(db, identifier, password, client_ip)

    async def _authenticate_individual(
        self, db: AsyncSession, user, password: str, client_ip: str
    ) -> IndividualPrincipal:
        now = self._clock()

        if user.is_locked(now):
            # Same bcrypt cost as every other failure path
            await self.store.verify_password(password, None)
            logger.warning(
                f"Authentication failed: Account locked. UserId: {user.id}, IP: {client_ip}"
            )
            raise Unauthenticated()

        if not await self.store.verify_password(password, user.hashed_password):
            await self.store.record_failed_attempt(db, user, now, client_ip)
            logger.warning(
                f"Authentication failed: Invalid password. UserId: {user.id}, IP: {client_ip}"
            )
            raise Unauthenticated()

        await self.store.record_successful_login(db, user, now, client_ip)
        return IndividualPrincipal(user)

    async def _authenticate_company(
        self, db: AsyncSession, email: str, password: str, client_ip: str
    ) -> CompanyPrincipal:
        company = await self.store.find_active_company(db, email)

        # Verify even when nothing matched so timing does not reveal existence
        password_ok = await self.store.verify_password(
            password, company.hashed_password if company else None
        )
        if company is None:
            logger.warning(
                f"Authentication failed: Account not found. Identifier: {email}, IP: {client_ip}"
            )
            raise Unauthenticated()
        if not password_ok:
            logger.warning(
                f"Authentication failed: Invalid password. CompanyId: {company.id}, IP: {client_ip}"
            )
            raise Unauthenticated()

        return CompanyPrincipal(company)

    # ─── Login ───────────────────────────────────
    async def login(
        self, db: AsyncSession, identifier: str, password: str, client_ip: str
    ) -> AuthResponse:
        principal = await self.authenticate(db, identifier, password, client_ip)
        issued = await self.issuer.issue(db, principal)
        logger.info(
            f"{principal.kind.value} authenticated successfully. "
            f"Id: {principal.account.id}, IP: {client_ip}"
        )
        return self.build_response(principal, issued)

    async def login_company(
        self, db: AsyncSession, email: str, password: str, client_ip: str
    ) -> AuthResponse:
        principal = await self._authenticate_company(db, email, password, client_ip)
        issued = await self.issuer.issue(db, principal)
        logger.info(
            f"Company authenticated successfully. Id: {principal.account.id}, IP: {client_ip}"
        )
        return self.build_response(principal, issued)

    # ─── Registration ───────────────────────────
    async def register_user(self, db: AsyncSession, data: RegisterRequest) -> AuthResponse:
        if await self.store.username_taken(db, data.username) or await self.store.email_taken(
            db, data.email
        ):
            logger.info(f"Registration rejected: duplicate username/email for {data.username}")
            raise Conflict("User with this username or email already exists")

        user = await self.store.create_user(db, data)
        logger.info(f"New user registered. UserId: {user.id}, Email: {user.email}")

        principal = IndividualPrincipal(user)
        return self.build_response(principal, await self.issuer.issue(db, principal))

    async def register_company(
        self, db: AsyncSession, data: CompanyRegisterRequest
    ) -> AuthResponse:
        if await self.store.email_taken(db, data.email):
            logger.info("Registration rejected: duplicate company email")
            raise Conflict("An account with this email already exists")
        if data.cui is not None and await self.store.cui_taken(db, data.cui):
            logger.info(f"Registration rejected: duplicate CUI {data.cui}")
            raise Conflict("Company with this CUI already exists")

        company = await self.store.create_company(db, data)
        logger.info(f"New company registered. CompanyId: {company.id}, Email: {company.email}")

        principal = CompanyPrincipal(company)
        return self.build_response(principal, await self.issuer.issue(db, principal))

    # ─── Refresh / logout ───────────────────────
    async def refresh(self, db: AsyncSession, refresh_token: str, client_ip: str) -> AuthResponse:
        principal, issued = await self.ledger.rotate(db, refresh_token, client_ip)
        return self.build_response(principal, issued)

    async def logout(self, db: AsyncSession, refresh_token: str, client_ip: str) -> bool:
        return await self.ledger.revoke(db, refresh_token, client_ip)

    async def logout_all(self, db: AsyncSession, owner: OwnerRef, client_ip: str) -> int:
        return await self.ledger.revoke_all(db, owner, client_ip)

    # ─── Claims ──────────────────────────────────
    @staticmethod
    def owner_from_claims(claims: Dict[str, Any]) -> OwnerRef:
        try:
            return OwnerRef(PrincipalKind(claims["role"]), int(claims["sub"]))
        except (KeyError, ValueError) as exc:
            raise Unauthenticated("Invalid token") from exc

    async def resolve_claims(self, db: AsyncSession, claims: Dict[str, Any]) -> Principal:
        """Load the active principal named by validated access-token claims."""
        owner = self.owner_from_claims(claims)
        if owner.kind is PrincipalKind.USER:
            user = await self.store.get_user(db, owner.id)
            if user is None or not user.is_active:
                raise NotFound("User not found")
            return IndividualPrincipal(user)

        company = await self.store.get_company(db, owner.id)
        if company is None or not company.is_active:
            raise NotFound("Company not found")
        return CompanyPrincipal(company)

    # ─── Response ────────────────────────────────
    @staticmethod
    def build_response(principal: Principal, issued: IssuedTokens) -> AuthResponse:
        dto = principal.to_dto()
        is_user = principal.kind is PrincipalKind.USER
        return AuthResponse(
            access_token=issued.access_token,
            refresh_token=issued.refresh_token,
            expires_at=issued.expires_at,
            user=dto if is_user else None,
            company=None if is_user else dto,
        )


def build_auth_service(config: AuthConfig, clock: Clock = utcnow) -> AuthService:
    """Wire the auth components around one config and clock."""
    store = CredentialStore(config)
    issuer = TokenIssuer(config, clock)
    ledger = RefreshTokenLedger(issuer, store, clock)
    return AuthService(config, store, issuer, ledger, clock)
