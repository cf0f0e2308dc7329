"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time, so the environment must be in place
# before anything from networth is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("IDENTITY_PROVIDER_CHAIN", '["builtin"]')
os.environ.setdefault("CHANGE_WEBHOOK_SECRET", "test-change-webhook-secret")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

import hashlib
import hmac
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from networth.core.database import Base, get_db
from networth.core.security import create_access_token
from networth.main import app
from networth.models.account import Account
from networth.services.identity.chain import reset_chain

# StaticPool so every session shares the one in-memory SQLite connection
# (a new connection would see an empty database)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    from networth import models  # noqa: F401

    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine) -> async_sessionmaker:
    """Session factory bound to the test engine (what the sweep opens per user)."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def db(db_session: AsyncSession) -> AsyncSession:
    """Alias for db_session to match test function signatures."""
    return db_session


@pytest.fixture(scope="function")
def override_get_db(db_session: AsyncSession):
    """Override the get_db dependency."""

    async def _override_get_db():
        yield db_session

    return _override_get_db


@pytest_asyncio.fixture(scope="function")
async def async_client(override_get_db) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client (lifespan is not run, so no real DB is touched)."""
    app.dependency_overrides[get_db] = override_get_db
    reset_chain()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    reset_chain()


@pytest.fixture
def test_user_id() -> str:
    return f"uid-{uuid4().hex[:12]}"


@pytest.fixture
def auth_headers(test_user_id: str) -> dict:
    """Bearer header carrying a builtin access token for test_user_id."""
    token = create_access_token({"sub": test_user_id, "email": "test@example.com"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sign_body():
    """Return a signer producing the HMAC-SHA256 hex signature of a body."""

    def _sign(body: bytes, secret: str = None) -> str:
        key = secret if secret is not None else os.environ["CHANGE_WEBHOOK_SECRET"]
        return hmac.new(key.encode("utf-8"), body, hashlib.sha256).hexdigest()

    return _sign


@pytest.fixture
def make_account(db_session: AsyncSession):
    """Factory that inserts and commits an account row."""

    async def _make_account(
        user_id: str,
        balance,
        currency: str = "INR",
        name: str = None,
        is_deleted: bool = False,
        account_id: str = None,
    ) -> Account:
        account = Account(
            id=account_id or f"acc-{uuid4().hex[:12]}",
            user_id=user_id,
            name=name or "Test Account",
            currency=currency,
            balance=Decimal(str(balance)),
            is_deleted=is_deleted,
        )
        db_session.add(account)
        await db_session.commit()
        return account

    return _make_account
