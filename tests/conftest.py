"""
Pytest configuration and shared fixtures.

This file provides common fixtures for all tests.

Every test gets its own in-memory SQLite database (aiosqlite, one shared
connection via StaticPool) and its own application instance. The app hands
out a fresh AsyncSession per request, exactly as in production, so
concurrent requests in a test never share a session.
"""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient, Response
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import Role, SecurityPolicy, Settings
from app.core.database import create_session_factory, init_models
from app.core.security import TokenIssuer, get_password_hash
from app.main import create_app
from app.models.account import Accounts
from app.services.credential_store import CredentialStore
from app.services.session import AccountLocks, SessionManager

API = "/api/v1"
TEST_PASSWORD = "secret1"


def make_test_settings(**overrides: Any) -> Settings:
    """Settings for tests; never reads secrets from the developer's .env."""
    values: dict[str, Any] = {
        "ENVIRONMENT": "test",
        "SECRET_KEY": "test-access-secret",
        "REFRESH_SECRET_KEY": "test-refresh-secret",
        "CSRF_SECRET_KEY": "test-csrf-secret",
        "DATABASE_URL": "sqlite+aiosqlite://",
        "CORS_ORIGINS": "http://localhost:5173",
        "LOG_LEVEL": "WARNING",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return make_test_settings()


@pytest.fixture
def policy() -> SecurityPolicy:
    """
    CSRF on, rate limiting off (no Redis in tests).

    Override this fixture in a test module to change the policy.
    """
    return SecurityPolicy(enforce_csrf=True, rate_limit_auth=False)


@pytest.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a fresh in-memory database for each test function.

    Function scope keeps the engine in the same event loop as the test.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_models(test_engine)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture(scope="function")
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging and inspecting data directly, outside the app."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session: AsyncSession) -> CredentialStore:
    return CredentialStore(db_session)


@pytest.fixture
def issuer(settings: Settings) -> TokenIssuer:
    return TokenIssuer.from_settings(settings)


@pytest.fixture
def session_manager(store: CredentialStore, issuer: TokenIssuer, settings: Settings) -> SessionManager:
    return SessionManager(store=store, issuer=issuer, settings=settings, locks=AccountLocks())


@pytest.fixture(scope="function")
def app(settings: Settings, policy: SecurityPolicy, engine: AsyncEngine) -> FastAPI:
    """
    Create a FastAPI app bound to the test database.

    ASGITransport does not run the lifespan, so tables are created by the
    engine fixture instead.
    """
    return create_app(settings=settings, policy=policy, engine=engine)


@pytest.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    Create async HTTP client for testing API endpoints.

    Usage:
        async def test_endpoint(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


class AuthFlow:
    """
    Drives the HTTP API the way a browser client would.

    Mutating helpers fetch a CSRF token for the current session first and
    echo it in the header. Cookies live in the client's cookie jar unless a
    helper takes an explicit refresh token, in which case the Cookie header
    is built by hand and the jar is bypassed.
    """

    def __init__(self, client: AsyncClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    async def csrf_token(self, headers: dict[str, str] | None = None) -> str:
        response = await self.client.get(f"{API}/csrf-token", headers=headers)
        assert response.status_code == 200
        return response.json()["csrf_token"]

    async def send(
        self,
        method: str,
        path: str,
        *,
        access_token: str | None = None,
        **kwargs: Any,
    ) -> Response:
        headers = dict(kwargs.pop("headers", None) or {})
        headers[self.settings.CSRF_HEADER_NAME] = await self.csrf_token()
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return await self.client.request(method, f"{API}{path}", headers=headers, **kwargs)

    async def register(
        self, email: str, password: str = TEST_PASSWORD, name: str = "Test User"
    ) -> Response:
        return await self.send(
            "POST", "/auth/register", json={"email": email, "password": password, "name": name}
        )

    async def login(self, email: str, password: str = TEST_PASSWORD) -> Response:
        return await self.send("POST", "/auth/login", json={"email": email, "password": password})

    def cookie_header(self, refresh_token: str, csrf_token: str | None = None) -> dict[str, str]:
        cookie = f"{self.settings.REFRESH_COOKIE_NAME}={refresh_token}"
        if csrf_token:
            cookie += f"; {self.settings.CSRF_COOKIE_NAME}={csrf_token}"
        return {"Cookie": cookie}

    async def headers_for(self, refresh_token: str) -> dict[str, str]:
        """Cookie and CSRF headers for a request made with a specific refresh token."""
        csrf_token = await self.csrf_token(headers=self.cookie_header(refresh_token))
        return {
            **self.cookie_header(refresh_token, csrf_token),
            self.settings.CSRF_HEADER_NAME: csrf_token,
        }

    async def refresh_with(self, refresh_token: str) -> Response:
        headers = await self.headers_for(refresh_token)
        return await self.client.post(f"{API}/auth/token", headers=headers)

    async def logout_with(self, refresh_token: str) -> Response:
        headers = await self.headers_for(refresh_token)
        return await self.client.post(f"{API}/auth/logout", headers=headers)


@pytest.fixture
def auth_flow(client: AsyncClient, settings: Settings) -> AuthFlow:
    return AuthFlow(client, settings)


# =============================================================================
# Test Data Fixtures
# =============================================================================


async def _create_account(
    db_session: AsyncSession, email: str, roles: list[str], name: str = "Test User"
) -> Accounts:
    account = Accounts(
        email=email,
        name=name,
        password_hash=get_password_hash(TEST_PASSWORD),
        roles=roles,
    )
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest.fixture
async def customer(db_session: AsyncSession) -> Accounts:
    """A customer account whose password is TEST_PASSWORD."""
    return await _create_account(db_session, "customer@example.com", [Role.CUSTOMER.value])


@pytest.fixture
async def other_customer(db_session: AsyncSession) -> Accounts:
    return await _create_account(
        db_session, "other@example.com", [Role.CUSTOMER.value], name="Other"
    )


@pytest.fixture
async def admin(db_session: AsyncSession) -> Accounts:
    return await _create_account(
        db_session, "boss@example.com", [Role.CUSTOMER.value, Role.ADMIN.value], name="Boss"
    )


@pytest.fixture
def customer_token(issuer: TokenIssuer, customer: Accounts) -> str:
    return issuer.issue_access_token(customer.id, customer.roles)


@pytest.fixture
def admin_token(issuer: TokenIssuer, admin: Accounts) -> str:
    return issuer.issue_access_token(admin.id, admin.roles)
