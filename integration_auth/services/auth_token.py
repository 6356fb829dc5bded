"""Credential lookup for integration calls.

Single entry point the rest of the application uses to get the secret it
presents to an integration's MCP server, whatever the auth type.
"""

import structlog

from integration_auth.core.errors import (
    ConcurrencyConflictError,
    ConfigurationError,
    NotConnectedError,
)
from integration_auth.core.encryption import mask_credential_value
from integration_auth.integrations import AuthType, IntegrationCatalog
from integration_auth.models.connection import ConnectionKey, ConnectionRecord
from integration_auth.services.token_refresh import TokenRefresher
from integration_auth.store.base import (
    MAX_UPDATE_ATTEMPTS,
    IntegrationStore,
    RecordStore,
    ensure_integration,
)

logger = structlog.get_logger()


class AuthTokenProvider:
    """Resolve the bearer credential for an account's integration."""

    def __init__(
        self,
        catalog: IntegrationCatalog,
        integration_store: IntegrationStore,
        connection_store: RecordStore[ConnectionKey, ConnectionRecord],
        refresher: TokenRefresher,
    ) -> None:
        self._catalog = catalog
        self._integrations = integration_store
        self._connections = connection_store
        self._refresher = refresher

    async def get_auth_token(self, integration_key: str, email_account_id: str) -> str:
        """Get the credential for an integration call.

        API-token integrations return the stored API key; OAuth integrations
        return an access token, refreshed if expired.

        Raises:
            NotConnectedError: If the account has no usable credential
            ReconnectRequiredError: If the OAuth token cannot be refreshed
            TokenRefreshError: If the provider rejects the refresh
        """
        definition = self._catalog.get(integration_key)

        if definition.auth_type == AuthType.API_TOKEN:
            connection = await self._get_connection(definition.key, email_account_id)
            if connection is None or not connection.is_active or not connection.api_key:
                raise NotConnectedError(
                    f"No API key found for {definition.key}. "
                    "Please configure the integration first.",
                    integration=definition.key,
                )
            return connection.api_key

        return await self._refresher.ensure_valid(definition.key, email_account_id)

    async def save_api_key(
        self,
        integration_key: str,
        email_account_id: str,
        api_key: str,
    ) -> ConnectionRecord:
        """Store the API key an account uses for an API-token integration.

        Raises:
            ConfigurationError: If the integration uses OAuth or the key is empty
        """
        definition = self._catalog.get(integration_key)
        if definition.auth_type != AuthType.API_TOKEN:
            raise ConfigurationError(
                f"{definition.key} uses OAuth; connect it through the authorization flow",
                integration=definition.key,
            )
        if not api_key:
            raise ConfigurationError(
                f"API key for {definition.key} must not be empty",
                integration=definition.key,
            )

        integration = await ensure_integration(self._integrations, definition.key)
        key = ConnectionKey(email_account_id, integration.id)

        for _ in range(MAX_UPDATE_ATTEMPTS):
            existing = await self._connections.get(key)
            if existing is None:
                record = ConnectionRecord(
                    name=definition.key,
                    email_account_id=email_account_id,
                    integration_id=integration.id,
                    api_key=api_key,
                    is_active=True,
                )
                expected_version = 0
            else:
                record = existing.model_copy(update={"api_key": api_key, "is_active": True})
                expected_version = existing.version

            try:
                stored = await self._connections.put(key, record, expected_version=expected_version)
            except ConcurrencyConflictError:
                continue

            logger.info(
                "api_key_saved",
                integration=definition.key,
                email_account_id=email_account_id,
                api_key=mask_credential_value(api_key),
            )
            return stored

        raise ConcurrencyConflictError(
            f"Connection for {definition.key} kept changing while saving API key"
        )

    async def _get_connection(
        self,
        integration_key: str,
        email_account_id: str,
    ) -> ConnectionRecord | None:
        integration = await self._integrations.get(integration_key)
        if integration is None or integration.id is None:
            return None
        return await self._connections.get(ConnectionKey(email_account_id, integration.id))
