"""Tests for the auth token provider."""

import pytest

from integration_auth.container import AuthServices
from integration_auth.core.errors import ConfigurationError, NotConnectedError

from conftest import FakeAuthServer, FakeClock

REDIRECT_URI = "https://app.example.com/api/mcp/callback"


class TestAuthTokenProvider:
    """Tests for AuthTokenProvider class."""

    @pytest.mark.asyncio
    async def test_api_token_integration(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
    ):
        await services.tokens.save_api_key("boards", "account-1", "api-key-123")

        token = await services.tokens.get_auth_token("boards", "account-1")

        assert token == "api-key-123"
        assert auth_server.requests == []

    @pytest.mark.asyncio
    async def test_api_key_replaced(self, services: AuthServices):
        await services.tokens.save_api_key("boards", "account-1", "old-key")
        stored = await services.tokens.save_api_key("boards", "account-1", "new-key")

        assert stored.version == 2
        assert await services.tokens.get_auth_token("boards", "account-1") == "new-key"

    @pytest.mark.asyncio
    async def test_api_token_not_configured(self, services: AuthServices):
        with pytest.raises(NotConnectedError, match="No API key"):
            await services.tokens.get_auth_token("boards", "account-1")

    @pytest.mark.asyncio
    async def test_api_token_inactive_connection(self, services: AuthServices):
        stored = await services.tokens.save_api_key("boards", "account-1", "api-key-123")
        await services.connection_store.put(
            stored.key,
            stored.model_copy(update={"is_active": False}),
        )

        with pytest.raises(NotConnectedError):
            await services.tokens.get_auth_token("boards", "account-1")

    @pytest.mark.asyncio
    async def test_oauth_integration_uses_refresher(
        self,
        services: AuthServices,
        clock: FakeClock,
    ):
        await services.exchanger.exchange(
            "acme",
            code="code",
            code_verifier="verifier",
            redirect_uri=REDIRECT_URI,
            email_account_id="account-1",
        )

        assert await services.tokens.get_auth_token("acme", "account-1") == "access-1"

        clock.advance(3601)
        assert await services.tokens.get_auth_token("acme", "account-1") == "access-2"

    @pytest.mark.asyncio
    async def test_oauth_not_connected(self, services: AuthServices):
        with pytest.raises(NotConnectedError) as exc_info:
            await services.tokens.get_auth_token("acme", "account-1")

        assert exc_info.value.requires_reconnect

    @pytest.mark.asyncio
    async def test_save_api_key_rejects_oauth_integration(self, services: AuthServices):
        with pytest.raises(ConfigurationError):
            await services.tokens.save_api_key("acme", "account-1", "key")

    @pytest.mark.asyncio
    async def test_save_api_key_rejects_empty_key(self, services: AuthServices):
        with pytest.raises(ConfigurationError):
            await services.tokens.save_api_key("boards", "account-1", "")
