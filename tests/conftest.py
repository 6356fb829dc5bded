"""Pytest configuration and fixtures.

Provides common fixtures for all tests including:
- Database engine and record stores (SQLite via aiosqlite)
- A fake authorization server behind httpx.MockTransport
- A controllable clock
- Fully wired auth services
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncGenerator
from urllib.parse import parse_qsl

import httpx
import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from integration_auth.config import Settings
from integration_auth.container import AuthServices, build_auth_services
from integration_auth.core.encryption import CredentialEncryption
from integration_auth.integrations import (
    AuthType,
    FallbackOAuthConfig,
    IntegrationCatalog,
    IntegrationDefinition,
    StaticCredentials,
)
from integration_auth.store.sql import SQLConnectionStore, SQLIntegrationStore

TEST_ENCRYPTION_KEY = Fernet.generate_key().decode()

ACME_SERVER_URL = "https://mcp.acme.com/mcp"
ACME_OAUTH_URL = "https://mcp.acme.com"


class FakeClock:
    """Clock returning a fixed, manually advanced UTC time."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeAuthServer:
    """Authorization server serving discovery, registration and tokens.

    Every request is recorded. Tokens are issued as ``access-N`` and
    ``refresh-N``; queue entries in ``token_responses`` to override the
    next responses.
    """

    def __init__(self, base_url: str = ACME_OAUTH_URL) -> None:
        self.base_url = base_url
        self.requests: list[httpx.Request] = []
        self.metadata: dict[str, Any] | None = {
            "issuer": base_url,
            "authorization_endpoint": f"{base_url}/authorize",
            "token_endpoint": f"{base_url}/token",
            "registration_endpoint": f"{base_url}/register",
            "response_types_supported": ["code"],
            "code_challenge_methods_supported": ["S256"],
        }
        self.protected_resource: dict[str, Any] | None = None
        self.protected_resource_status: int | None = None
        self.registration_error: dict[str, Any] | None = None
        self.registrations: list[dict[str, Any]] = []
        self.token_requests: list[dict[str, str]] = []
        self.token_responses: list[tuple[int, dict[str, Any]]] = []
        self.unreachable = False
        self.issued = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if path.startswith("/.well-known/oauth-protected-resource"):
            if self.protected_resource_status is not None:
                return httpx.Response(self.protected_resource_status)
            if self.protected_resource is None:
                return httpx.Response(404)
            return httpx.Response(200, json=self.protected_resource)
        if path == "/.well-known/oauth-authorization-server":
            if self.metadata is None:
                return httpx.Response(404)
            return httpx.Response(200, json=self.metadata)
        if path.startswith("/.well-known/") or path.endswith("/openid-configuration"):
            return httpx.Response(404)
        if path == "/register":
            return self._register(request)
        if path == "/token":
            return self._token(request)
        return httpx.Response(404)

    def _register(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.registrations.append(body)
        if self.registration_error is not None:
            return httpx.Response(400, json=self.registration_error)
        return httpx.Response(
            201,
            json={**body, "client_id": "dyn-client-id", "client_secret": "dyn-client-secret"},
        )

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode()))
        self.token_requests.append(form)
        if self.token_responses:
            status, body = self.token_responses.pop(0)
            return httpx.Response(status, json=body)
        self.issued += 1
        return httpx.Response(
            200,
            json={
                "access_token": f"access-{self.issued}",
                "token_type": "Bearer",
                "expires_in": 3600,
                "refresh_token": f"refresh-{self.issued}",
            },
        )

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        encryption_key=TEST_ENCRYPTION_KEY,
        debug=True,
    )


@pytest.fixture(scope="session")
def encryption(test_settings: Settings) -> CredentialEncryption:
    """Create encryption instance."""
    return CredentialEncryption(test_settings.encryption_key.get_secret_value())


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create async database engine.

    A file database lets every store operation open its own connection.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'integration_auth.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
def integration_store(
    session_maker: sessionmaker,
    encryption: CredentialEncryption,
) -> SQLIntegrationStore:
    return SQLIntegrationStore(session_maker, encryption)


@pytest.fixture
def connection_store(
    session_maker: sessionmaker,
    encryption: CredentialEncryption,
) -> SQLConnectionStore:
    return SQLConnectionStore(session_maker, encryption)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def auth_server() -> FakeAuthServer:
    return FakeAuthServer()


@pytest_asyncio.fixture
async def http_client(auth_server: FakeAuthServer) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client routed to the fake authorization server."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(auth_server.handler)) as client:
        yield client


@pytest.fixture
def catalog() -> IntegrationCatalog:
    """Catalog of test integrations, independent of environment settings."""
    return IntegrationCatalog(
        [
            IntegrationDefinition(
                key="acme",
                display_name="Acme",
                server_url=ACME_SERVER_URL,
                scopes=("read", "write"),
            ),
            IntegrationDefinition(
                key="stripeish",
                display_name="Stripeish",
                server_url="https://mcp.stripeish.com",
                fallback_oauth_config=FallbackOAuthConfig(
                    authorization_endpoint="https://market.stripeish.com/oauth/authorize",
                    token_endpoint="https://market.stripeish.com/oauth/token",
                ),
            ),
            IntegrationDefinition(
                key="preregistered",
                display_name="Preregistered",
                server_url="https://mcp.prereg.com/mcp",
                static_credentials=StaticCredentials(
                    client_id="static-client-id",
                    client_secret="static-client-secret",
                ),
            ),
            IntegrationDefinition(
                key="nourl",
                display_name="No URL",
                server_url=None,
            ),
            IntegrationDefinition(
                key="boards",
                display_name="Boards",
                server_url=None,
                auth_type=AuthType.API_TOKEN,
            ),
        ]
    )


@pytest.fixture
def services(
    test_settings: Settings,
    session_maker: sessionmaker,
    http_client: httpx.AsyncClient,
    catalog: IntegrationCatalog,
    clock: FakeClock,
) -> AuthServices:
    """Auth services wired against the test database and fake server."""
    return build_auth_services(
        test_settings,
        session_maker,
        http_client,
        catalog=catalog,
        clock=clock,
    )
