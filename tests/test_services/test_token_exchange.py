"""Tests for authorization code exchange."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from integration_auth.container import AuthServices
from integration_auth.core.errors import TokenExchangeError
from integration_auth.models.connection import ConnectionKey, MCPConnection
from integration_auth.models.integration import MCPIntegration
from integration_auth.services.token_exchange import calculate_token_expiration

from conftest import ACME_SERVER_URL, FakeAuthServer, FakeClock

REDIRECT_URI = "https://app.example.com/api/mcp/callback"


async def _exchange(services: AuthServices, account: str = "account-1"):
    return await services.exchanger.exchange(
        "acme",
        code="code-1",
        code_verifier="verifier-1",
        redirect_uri=REDIRECT_URI,
        email_account_id=account,
    )


async def _connection(services: AuthServices, account: str = "account-1"):
    integration = await services.integration_store.get("acme")
    return await services.connection_store.get(ConnectionKey(account, integration.id))


class TestCalculateTokenExpiration:
    NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_uses_expires_in(self):
        assert calculate_token_expiration(7200, self.NOW) == self.NOW + timedelta(hours=2)

    @pytest.mark.parametrize("expires_in", [None, 0])
    def test_defaults_to_one_hour(self, expires_in):
        assert calculate_token_expiration(expires_in, self.NOW) == self.NOW + timedelta(hours=1)

    def test_custom_default(self):
        expires_at = calculate_token_expiration(None, self.NOW, default_expiry_seconds=600)

        assert expires_at == self.NOW + timedelta(minutes=10)


class TestTokenExchanger:
    """Tests for TokenExchanger class."""

    @pytest.mark.asyncio
    async def test_exchange_creates_connection(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
        clock: FakeClock,
    ):
        tokens = await _exchange(services)

        assert tokens.access_token == "access-1"
        connection = await _connection(services)
        assert connection.name == "acme"
        assert connection.access_token == "access-1"
        assert connection.refresh_token == "refresh-1"
        assert connection.expires_at == clock.now + timedelta(seconds=3600)
        assert connection.is_active is True

    @pytest.mark.asyncio
    async def test_token_request_parameters(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
    ):
        await _exchange(services)

        form = auth_server.token_requests[0]
        assert form["grant_type"] == "authorization_code"
        assert form["code"] == "code-1"
        assert form["code_verifier"] == "verifier-1"
        assert form["redirect_uri"] == REDIRECT_URI
        assert form["resource"] == ACME_SERVER_URL
        assert form["client_id"] == "dyn-client-id"

    @pytest.mark.asyncio
    async def test_one_integration_and_connection_rows(
        self,
        services: AuthServices,
        session_maker: sessionmaker,
    ):
        await _exchange(services)
        await _exchange(services)

        async with session_maker() as session:
            integrations = await session.scalar(select(func.count()).select_from(MCPIntegration))
            connections = await session.scalar(select(func.count()).select_from(MCPConnection))

        assert integrations == 1
        assert connections == 1
        assert (await _connection(services)).access_token == "access-2"

    @pytest.mark.asyncio
    async def test_missing_expires_in_defaults_to_one_hour(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
        clock: FakeClock,
    ):
        auth_server.token_responses.append((200, {"access_token": "a1", "token_type": "Bearer"}))

        tokens = await _exchange(services)

        assert tokens.expires_in is None
        connection = await _connection(services)
        assert connection.expires_at == clock.now + timedelta(hours=1)
        assert connection.refresh_token is None

    @pytest.mark.asyncio
    async def test_reconnect_keeps_refresh_token_when_not_returned(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
    ):
        await _exchange(services)
        auth_server.token_responses.append(
            (200, {"access_token": "a2", "token_type": "Bearer", "expires_in": 60})
        )

        await _exchange(services)

        connection = await _connection(services)
        assert connection.access_token == "a2"
        assert connection.refresh_token == "refresh-1"

    @pytest.mark.asyncio
    async def test_reconnect_reactivates_connection(self, services: AuthServices):
        await _exchange(services)
        connection = await _connection(services)
        await services.connection_store.put(
            connection.key,
            connection.model_copy(update={"is_active": False}),
        )

        await _exchange(services)

        assert (await _connection(services)).is_active is True

    @pytest.mark.asyncio
    async def test_connections_are_per_account(self, services: AuthServices):
        await _exchange(services, "account-1")
        await _exchange(services, "account-2")

        assert (await _connection(services, "account-1")).access_token == "access-1"
        assert (await _connection(services, "account-2")).access_token == "access-2"

    @pytest.mark.asyncio
    async def test_provider_rejection(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
    ):
        auth_server.token_responses.append(
            (400, {"error": "invalid_grant", "error_description": "Code already used"})
        )

        with pytest.raises(TokenExchangeError) as exc_info:
            await _exchange(services)

        assert exc_info.value.error == "invalid_grant"
        assert exc_info.value.error_description == "Code already used"
        assert await _connection(services) is None

    @pytest.mark.asyncio
    async def test_transport_failure(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
    ):
        # Resolve client and metadata first so only the token call fails
        await services.registrar.get_client("acme", REDIRECT_URI)
        auth_server.unreachable = True

        with pytest.raises(TokenExchangeError):
            await _exchange(services)
