"""Tests for the authentication orchestrator."""

from unittest.mock import AsyncMock, patch

import pytest
from pydantic import ValidationError
from sqlalchemy import select

from app.core.exceptions import Conflict, NotFound, Unauthenticated
from app.models.refresh_token import PrincipalKind, RefreshToken
from app.models.user import User
from app.schemas.auth import CompanyRegisterRequest, RegisterRequest
from app.services.credential_store import CredentialStore

from conftest import COMPANY_PASSWORD, USER_PASSWORD, company_payload, user_payload


async def fetch_user(session_factory, username: str) -> User:
    async with session_factory() as session:
        result = await session.execute(select(User).where(User.username == username))
        return result.scalar_one()


# ============================================
# Password hashing
# ============================================

class TestCredentialStore:

    @pytest.mark.asyncio
    async def test_password_hashing(self):
        hashed = await CredentialStore.hash_password("securePassword123!")

        assert hashed != "securePassword123!"
        assert hashed.startswith("$2")
        assert await CredentialStore.verify_password("securePassword123!", hashed) is True
        assert await CredentialStore.verify_password("wrongPassword", hashed) is False

    @pytest.mark.asyncio
    async def test_missing_hash_never_verifies(self):
        from app.services.credential_store import FAKE_HASHED_PASSWORD

        assert FAKE_HASHED_PASSWORD
        assert await CredentialStore.verify_password("anything", None) is False

    @pytest.mark.asyncio
    async def test_email_taken_spans_both_tables(self, db, registered_user, registered_company):
        assert await CredentialStore.email_taken(db, "ALICE@example.com")
        assert await CredentialStore.email_taken(db, "hello@clubnova.ro")
        assert not await CredentialStore.email_taken(db, "nobody@example.com")


# ============================================
# Login
# ============================================

class TestLogin:

    @pytest.mark.asyncio
    async def test_login_issues_pair_for_subject(self, db, session_factory, auth_service, registered_user):
        result = await auth_service.login(db, "alice@example.com", USER_PASSWORD, "10.0.0.1")
        await db.commit()

        claims = auth_service.issuer.decode_access_token(result.access_token)
        assert claims["sub"] == str(registered_user.user.id)
        assert result.user is not None and result.company is None
        assert result.user.username == "alice"
        assert result.user.scopes == ["read", "write"]

        async with session_factory() as session:
            stored = (
                await session.execute(
                    select(RefreshToken).where(RefreshToken.token == result.refresh_token)
                )
            ).scalar_one()
        assert stored.is_active(auth_service._clock())
        assert stored.jwt_id == claims["jti"]

    @pytest.mark.asyncio
    async def test_login_by_username_records_last_login(
        self, db, session_factory, auth_service, registered_user, clock
    ):
        await auth_service.login(db, "alice", USER_PASSWORD, "192.168.1.20")
        await db.commit()

        user = await fetch_user(session_factory, "alice")
        assert user.last_login_ip == "192.168.1.20"
        assert user.last_login_at == clock()
        assert user.failed_login_attempts == 0

    @pytest.mark.asyncio
    async def test_unknown_account(self, db, auth_service, registered_user):
        with pytest.raises(Unauthenticated) as unknown:
            await auth_service.login(db, "mallory@example.com", USER_PASSWORD, "10.0.0.1")
        with pytest.raises(Unauthenticated) as wrong:
            await auth_service.login(db, "alice", "Wr0ng!Pass", "10.0.0.1")

        # same outward signal either way
        assert str(unknown.value) == str(wrong.value)

    @pytest.mark.asyncio
    async def test_inactive_account_rejected(self, db, auth_service, registered_user):
        user = await auth_service.store.get_user(db, registered_user.user.id)
        user.is_active = False
        await db.commit()

        with pytest.raises(Unauthenticated):
            await auth_service.login(db, "alice", USER_PASSWORD, "10.0.0.1")

    @pytest.mark.asyncio
    async def test_company_login_through_shared_login(self, db, auth_service, registered_company):
        result = await auth_service.login(db, "hello@clubnova.ro", COMPANY_PASSWORD, "10.0.0.1")

        assert result.user is None
        assert result.company is not None
        assert result.company.scopes == ["read", "write", "manage"]
        claims = auth_service.issuer.decode_access_token(result.access_token)
        assert claims["role"] == PrincipalKind.COMPANY.value

    @pytest.mark.asyncio
    async def test_company_only_login(self, db, auth_service, registered_user, registered_company):
        result = await auth_service.login_company(db, "hello@clubnova.ro", COMPANY_PASSWORD, "10.0.0.1")
        assert result.company.email == "hello@clubnova.ro"

        # an individual's credentials do not open the company door
        with pytest.raises(Unauthenticated):
            await auth_service.login_company(db, "alice@example.com", USER_PASSWORD, "10.0.0.1")


# ============================================
# Lockout
# ============================================

class TestLockout:

    @pytest.mark.asyncio
    async def test_lockout_after_five_failures_then_expiry(
        self, db, session_factory, auth_service, registered_user, clock
    ):
        for _ in range(5):
            with pytest.raises(Unauthenticated):
                await auth_service.login(db, "alice@example.com", "wrong", "10.0.0.1")

        user = await fetch_user(session_factory, "alice")
        assert user.failed_login_attempts == 5
        assert user.locked_until == clock() + auth_service.config.lockout_duration

        # correct password while locked
        with pytest.raises(Unauthenticated):
            await auth_service.login(db, "alice@example.com", USER_PASSWORD, "10.0.0.1")

        clock.advance(minutes=29)
        with pytest.raises(Unauthenticated):
            await auth_service.login(db, "alice@example.com", USER_PASSWORD, "10.0.0.1")

        clock.advance(minutes=1)
        result = await auth_service.login(db, "alice@example.com", USER_PASSWORD, "10.0.0.1")
        await db.commit()
        assert result.user.email == "alice@example.com"

        user = await fetch_user(session_factory, "alice")
        assert user.failed_login_attempts == 0
        assert user.locked_until is None

    @pytest.mark.asyncio
    async def test_failed_attempts_survive_request_rollback(
        self, db, session_factory, auth_service, registered_user
    ):
        with pytest.raises(Unauthenticated):
            await auth_service.login(db, "alice", "wrong", "10.0.0.1")
        await db.rollback()

        user = await fetch_user(session_factory, "alice")
        assert user.failed_login_attempts == 1
        assert user.locked_until is None

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, db, session_factory, auth_service, registered_user):
        for _ in range(4):
            with pytest.raises(Unauthenticated):
                await auth_service.login(db, "alice", "wrong", "10.0.0.1")
        await auth_service.login(db, "alice", USER_PASSWORD, "10.0.0.1")
        await db.commit()

        user = await fetch_user(session_factory, "alice")
        assert user.failed_login_attempts == 0

    @pytest.mark.asyncio
    async def test_companies_are_never_locked(self, db, auth_service, registered_company):
        for _ in range(6):
            with pytest.raises(Unauthenticated):
                await auth_service.login(db, "hello@clubnova.ro", "wrong", "10.0.0.1")

        result = await auth_service.login(db, "hello@clubnova.ro", COMPANY_PASSWORD, "10.0.0.1")
        assert result.company is not None


# ============================================
# Registration
# ============================================

class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_user_logs_in(self, db, auth_service, registered_user):
        assert registered_user.user.email == "alice@example.com"
        assert registered_user.company is None
        claims = auth_service.issuer.decode_access_token(registered_user.access_token)
        assert claims["sub"] == str(registered_user.user.id)

    @pytest.mark.asyncio
    async def test_password_is_hashed(self, session_factory, registered_user):
        user = await fetch_user(session_factory, "alice")
        assert user.hashed_password != USER_PASSWORD
        assert await CredentialStore.verify_password(USER_PASSWORD, user.hashed_password)

    @pytest.mark.asyncio
    async def test_duplicate_username_conflicts(self, db, auth_service, registered_user):
        data = RegisterRequest.model_validate(user_payload(email="other@example.com"))
        with pytest.raises(Conflict):
            await auth_service.register_user(db, data)

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, db, auth_service, registered_user):
        data = RegisterRequest.model_validate(user_payload(username="alice2"))
        with pytest.raises(Conflict):
            await auth_service.register_user(db, data)

    @pytest.mark.asyncio
    async def test_company_cannot_reuse_individual_email(self, db, auth_service, registered_user):
        data = CompanyRegisterRequest.model_validate(company_payload(email="alice@example.com"))
        with pytest.raises(Conflict):
            await auth_service.register_company(db, data)

    @pytest.mark.asyncio
    async def test_individual_cannot_reuse_company_email(self, db, auth_service, registered_company):
        data = RegisterRequest.model_validate(user_payload(email="hello@clubnova.ro"))
        with pytest.raises(Conflict):
            await auth_service.register_user(db, data)

    @pytest.mark.asyncio
    async def test_duplicate_cui_conflicts(self, db, auth_service, registered_company):
        data = CompanyRegisterRequest.model_validate(company_payload(email="other@clubnova.ro"))
        with pytest.raises(Conflict):
            await auth_service.register_company(db, data)

    @pytest.mark.asyncio
    async def test_register_company_logs_in(self, auth_service, registered_company):
        assert registered_company.user is None
        assert registered_company.company.name == "Club Nova"
        assert registered_company.company.cui == 12345678
        claims = auth_service.issuer.decode_access_token(registered_company.access_token)
        assert claims["role"] == "Company"


# ============================================
# Refresh / logout
# ============================================

class TestSessionLifecycle:

    @pytest.mark.asyncio
    async def test_refresh_returns_new_pair(self, db, auth_service, registered_user):
        result = await auth_service.refresh(db, registered_user.refresh_token, "10.0.0.1")

        assert result.refresh_token != registered_user.refresh_token
        assert result.user.id == registered_user.user.id

    @pytest.mark.asyncio
    async def test_refresh_twice_fails(self, db, auth_service, registered_user):
        await auth_service.refresh(db, registered_user.refresh_token, "10.0.0.1")
        await db.commit()

        with pytest.raises(Unauthenticated):
            await auth_service.refresh(db, registered_user.refresh_token, "10.0.0.1")

    @pytest.mark.asyncio
    async def test_logout_then_refresh(self, db, auth_service, registered_user):
        token = registered_user.refresh_token

        assert await auth_service.logout(db, token, "10.0.0.1") is True
        await db.commit()

        with pytest.raises(Unauthenticated):
            await auth_service.refresh(db, token, "10.0.0.1")
        await db.rollback()

        assert await auth_service.logout(db, token, "10.0.0.1") is False

    @pytest.mark.asyncio
    async def test_resolve_claims(self, db, auth_service, registered_user, registered_company):
        user_claims = auth_service.issuer.decode_access_token(registered_user.access_token)
        company_claims = auth_service.issuer.decode_access_token(registered_company.access_token)

        assert (await auth_service.resolve_claims(db, user_claims)).kind is PrincipalKind.USER
        assert (await auth_service.resolve_claims(db, company_claims)).kind is PrincipalKind.COMPANY

    @pytest.mark.asyncio
    async def test_resolve_claims_for_deleted_account(self, db, auth_service):
        with pytest.raises(NotFound):
            await auth_service.resolve_claims(db, {"sub": "999", "role": "User"})


# ============================================
# Login identifier disambiguation
# ============================================

async def add_legacy_user(db, username: str, email: str) -> User:
    """Insert a row directly, bypassing registration validation."""
    user = User(
        username=username,
        email=email,
        hashed_password=await CredentialStore.hash_password("Squ4tter!Pass"),
        first_name="Legacy",
        last_name="Row",
        phone_number="",
        role="User",
        is_active=True,
        failed_login_attempts=0,
    )
    db.add(user)
    await db.commit()
    return user


class TestLoginIdentifiers:

    def test_username_cannot_look_like_an_email(self):
        with pytest.raises(ValidationError):
            RegisterRequest.model_validate(user_payload(username="hello@clubnova.ro"))

    @pytest.mark.asyncio
    async def test_company_email_is_not_shadowed_by_a_username(
        self, db, session_factory, auth_service, registered_company
    ):
        await add_legacy_user(db, "hello@clubnova.ro", "squatter@example.com")

        result = await auth_service.login(db, "hello@clubnova.ro", COMPANY_PASSWORD, "10.0.0.1")
        assert result.company is not None
        assert result.user is None

        squatter = await fetch_user(session_factory, "hello@clubnova.ro")
        assert squatter.failed_login_attempts == 0

    @pytest.mark.asyncio
    async def test_email_login_ignores_other_users_usernames(
        self, db, session_factory, auth_service, registered_user
    ):
        await add_legacy_user(db, "alice@example.com", "other@example.com")

        with pytest.raises(Unauthenticated):
            await auth_service.login(db, "alice@example.com", "wrong", "10.0.0.1")
        result = await auth_service.login(db, "alice@example.com", USER_PASSWORD, "10.0.0.1")
        await db.commit()

        assert result.user.username == "alice"
        other = await fetch_user(session_factory, "alice@example.com")
        assert other.failed_login_attempts == 0


# ============================================
# Lockout hardening
# ============================================

class TestLockoutHardening:

    @pytest.mark.asyncio
    async def test_locked_account_still_pays_for_a_hash(self, db, auth_service, registered_user):
        for _ in range(5):
            with pytest.raises(Unauthenticated):
                await auth_service.login(db, "alice", "wrong", "10.0.0.1")

        verify = AsyncMock(return_value=False)
        with patch.object(auth_service.store, "verify_password", verify):
            with pytest.raises(Unauthenticated):
                await auth_service.login(db, "alice", USER_PASSWORD, "10.0.0.1")

        verify.assert_awaited_once_with(USER_PASSWORD, None)

    @pytest.mark.asyncio
    async def test_concurrent_failures_are_all_counted(
        self, session_factory, auth_service, registered_user, clock
    ):
        async with session_factory() as first, session_factory() as second:
            # both requests read the counter before either writes
            stale_a = await CredentialStore.get_user(first, registered_user.user.id)
            stale_b = await CredentialStore.get_user(second, registered_user.user.id)
            assert stale_a.failed_login_attempts == stale_b.failed_login_attempts == 0

            await auth_service.store.record_failed_attempt(first, stale_a, clock(), "10.0.0.1")
            await auth_service.store.record_failed_attempt(second, stale_b, clock(), "10.0.0.2")

        user = await fetch_user(session_factory, "alice")
        assert user.failed_login_attempts == 2
        assert user.locked_until is None

    @pytest.mark.asyncio
    async def test_concurrent_failures_reach_the_lock(
        self, db, session_factory, auth_service, registered_user, clock
    ):
        for _ in range(3):
            with pytest.raises(Unauthenticated):
                await auth_service.login(db, "alice", "wrong", "10.0.0.1")

        async with session_factory() as first, session_factory() as second:
            stale_a = await CredentialStore.get_user(first, registered_user.user.id)
            stale_b = await CredentialStore.get_user(second, registered_user.user.id)

            await auth_service.store.record_failed_attempt(first, stale_a, clock(), "10.0.0.1")
            await auth_service.store.record_failed_attempt(second, stale_b, clock(), "10.0.0.2")

            assert stale_b.failed_login_attempts == 5
            assert stale_b.is_locked(clock())

        user = await fetch_user(session_factory, "alice")
        assert user.locked_until == clock() + auth_service.config.lockout_duration
