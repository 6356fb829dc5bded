"""Tests for OAuth client resolution and dynamic registration."""

import pytest

from integration_auth.container import AuthServices
from integration_auth.core.errors import ConfigurationError, RegistrationError
from integration_auth.models.integration import IntegrationRecord

from conftest import FakeAuthServer

REDIRECT_URI = "https://app.example.com/api/mcp/callback"


class TestClientRegistrar:
    """Tests for ClientRegistrar class."""

    @pytest.mark.asyncio
    async def test_static_credentials_win(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
    ):
        client = await services.registrar.get_client("preregistered", REDIRECT_URI)

        assert client.client_id == "static-client-id"
        assert client.client_secret == "static-client-secret"
        assert auth_server.requests == []

    @pytest.mark.asyncio
    async def test_stored_client_reused(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
    ):
        await services.integration_store.put(
            "acme",
            IntegrationRecord(name="acme", oauth_client_id="stored-id"),
        )

        client = await services.registrar.get_client("acme")

        assert client.client_id == "stored-id"
        assert client.client_secret is None
        assert auth_server.requests == []

    @pytest.mark.asyncio
    async def test_dynamic_registration_persists_client(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
    ):
        client = await services.registrar.get_client("acme", REDIRECT_URI)

        assert client.client_id == "dyn-client-id"
        assert client.client_secret == "dyn-client-secret"

        registration = auth_server.registrations[0]
        assert registration["client_name"] == "Inbox Zero"
        assert registration["redirect_uris"] == [REDIRECT_URI]
        assert registration["grant_types"] == ["authorization_code", "refresh_token"]
        assert registration["response_types"] == ["code"]
        assert registration["token_endpoint_auth_method"] == "none"
        assert registration["scope"] == "read write"

        stored = await services.integration_store.get("acme")
        assert stored.oauth_client_id == "dyn-client-id"
        assert stored.oauth_client_secret == "dyn-client-secret"
        # Discovery cache written alongside the client
        assert stored.registered_server_url == "https://mcp.acme.com"

    @pytest.mark.asyncio
    async def test_second_call_uses_stored_client(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
    ):
        await services.registrar.get_client("acme", REDIRECT_URI)
        calls = len(auth_server.requests)

        client = await services.registrar.get_client("acme")

        assert client.client_id == "dyn-client-id"
        assert len(auth_server.requests) == calls
        assert len(auth_server.registrations) == 1

    @pytest.mark.asyncio
    async def test_missing_redirect_uri_fails_before_network(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
    ):
        with pytest.raises(ConfigurationError, match="redirect_uri"):
            await services.registrar.get_client("acme")

        assert auth_server.requests == []

    @pytest.mark.asyncio
    async def test_missing_server_url(self, services: AuthServices, auth_server: FakeAuthServer):
        with pytest.raises(ConfigurationError, match="No server URL"):
            await services.registrar.get_client("nourl", REDIRECT_URI)

        assert auth_server.requests == []

    @pytest.mark.asyncio
    async def test_no_registration_endpoint(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
    ):
        del auth_server.metadata["registration_endpoint"]

        with pytest.raises(RegistrationError, match="static OAuth credentials"):
            await services.registrar.get_client("acme", REDIRECT_URI)

        assert auth_server.registrations == []
        stored = await services.integration_store.get("acme")
        assert stored.oauth_client_id is None

    @pytest.mark.asyncio
    async def test_registration_rejected(
        self,
        services: AuthServices,
        auth_server: FakeAuthServer,
    ):
        auth_server.registration_error = {
            "error": "invalid_client_metadata",
            "error_description": "Unsupported redirect URI",
        }

        with pytest.raises(RegistrationError) as exc_info:
            await services.registrar.get_client("acme", REDIRECT_URI)

        assert exc_info.value.error == "invalid_client_metadata"
        assert exc_info.value.status_code == 400
        stored = await services.integration_store.get("acme")
        assert stored.oauth_client_id is None
