"""
Shared fixtures for the auth tests.

Run with: pytest -v
"""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-the-acoomh-suite-0123456789")

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers mappers)
from app.core.auth_config import AuthConfig
from app.core.config import Settings
from app.db import Base, get_db
from app.schemas.auth import CompanyRegisterRequest, RegisterRequest
from app.services.auth_service import build_auth_service

TEST_SECRET = "test-secret-key-for-the-acoomh-suite-0123456789"
USER_PASSWORD = "Str0ng!Pass"
COMPANY_PASSWORD = "Sup3r$ecret"


class FrozenClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def user_payload(**overrides) -> dict:
    payload = {
        "username": "alice",
        "firstName": "Alice",
        "lastName": "Popescu",
        "email": "alice@example.com",
        "password": USER_PASSWORD,
        "phoneNumber": "+40 712 345 678",
    }
    payload.update(overrides)
    return payload


def company_payload(**overrides) -> dict:
    payload = {
        "name": "Club Nova",
        "email": "hello@clubnova.ro",
        "password": COMPANY_PASSWORD,
        "cui": 12345678,
        "category": "Club",
        "description": "Live music every weekend",
    }
    payload.update(overrides)
    return payload


# ============================================
# Configuration
# ============================================

@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def test_settings():
    return Settings(
        jwt_secret_key=TEST_SECRET,
        database_url="sqlite+aiosqlite://",
        rate_limit_enabled=False,
        debug=False,
    )


@pytest.fixture
def auth_config(test_settings):
    return AuthConfig.from_settings(test_settings)


@pytest.fixture
def auth_service(auth_config, clock):
    return build_auth_service(auth_config, clock)


# ============================================
# Database
# ============================================

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def registered_user(db, auth_service):
    """An individual account plus the tokens issued at registration."""
    result = await auth_service.register_user(db, RegisterRequest.model_validate(user_payload()))
    await db.commit()
    return result


@pytest_asyncio.fixture
async def registered_company(db, auth_service):
    result = await auth_service.register_company(
        db, CompanyRegisterRequest.model_validate(company_payload())
    )
    await db.commit()
    return result


# ============================================
# HTTP
# ============================================

def build_client_app(app_settings, clock, session_factory):
    from main import create_app

    application = create_app(app_settings, clock=clock)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest_asyncio.fixture
async def client(test_settings, clock, session_factory):
    application = build_client_app(test_settings, clock, session_factory)
    async with AsyncClient(transport=ASGITransport(app=application), base_url="http://test") as ac:
        yield ac
