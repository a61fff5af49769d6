"""Pytest configuration and fixtures for async testing."""
import json
from pathlib import Path
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient, Response
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from detailing_billing.auth.jwt import JWTAuth
from detailing_billing.config import Settings
from detailing_billing.database import Base, create_session_factory
from detailing_billing.main import create_app
from utils.stripe_helpers import JWT_SECRET, WEBHOOK_SECRET, FakeStripeGateway, stripe_signature

# Importing the models registers their tables on Base.metadata
import detailing_billing.models  # noqa: F401


@pytest.fixture(scope="function")
def test_settings(tmp_path: Path) -> Settings:
    """
    Settings for an isolated SQLite database per test.

    Returns:
        Settings: Test configuration with Stripe and JWT secrets set
    """
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'billing_test.db'}",
        stripe_secret_key="sk_test_fake",
        stripe_webhook_secret=WEBHOOK_SECRET,
        supabase_jwt_secret=JWT_SECRET,
        app_env="test",
        log_level="WARNING",
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """
    Create the test engine with all tables.

    pysqlite's own transaction handling breaks SAVEPOINTs, so transactions are
    begun explicitly. WAL lets a test read while the app commits.
    """
    engine = create_async_engine(test_settings.database_url)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
def fake_gateway() -> FakeStripeGateway:
    return FakeStripeGateway()


@pytest.fixture(scope="function")
def app(
    test_settings: Settings,
    fake_gateway: FakeStripeGateway,
    session_factory: async_sessionmaker[AsyncSession],
) -> FastAPI:
    """Application wired to the test database and fake Stripe gateway."""
    return create_app(settings=test_settings, gateway=fake_gateway, session_factory=session_factory)


@pytest_asyncio.fixture(scope="function")
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing.

    Yields:
        AsyncClient: Async HTTP client for API testing
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture(scope="function")
def post_event(async_client: AsyncClient):
    """
    Post a correctly signed Stripe event to the webhook endpoint.

    Returns:
        Coroutine function taking the event dict
    """

    async def _post(stripe_event: dict[str, Any], secret: str = WEBHOOK_SECRET) -> Response:
        payload = json.dumps(stripe_event)
        return await async_client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": stripe_signature(payload, secret), "Content-Type": "application/json"},
        )

    return _post


@pytest.fixture(scope="function")
def auth_headers():
    """
    Build Bearer headers for a Supabase user.

    Returns:
        Function mapping an owner id to request headers
    """
    jwt_auth = JWTAuth(JWT_SECRET)

    def _headers(owner_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {jwt_auth.create_access_token(owner_id, email='owner@example.com')}"}

    return _headers


@pytest_asyncio.fixture(scope="function")
async def test_business(db_session: AsyncSession):
    """
    Create an active pro business for integration tests.

    Args:
        db_session: Database session

    Returns:
        Business: Test business instance
    """
    from detailing_billing.models.business import Business
    from utils.factories import BusinessFactory

    business = Business(**BusinessFactory.create())

    db_session.add(business)
    await db_session.commit()

    return business


@pytest.fixture(scope="function")
def fetch(session_factory: async_sessionmaker[AsyncSession]):
    """
    Run a query in a short-lived session and return all scalar results.

    Reads never see state cached by another session.
    """

    async def _fetch(statement) -> list:
        async with session_factory() as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    return _fetch
