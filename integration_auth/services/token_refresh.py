"""Access token refresh.

Returns a usable access token for a connection, refreshing it when it has
expired. Refreshes for the same connection are serialized in process and
the write is version-checked, so concurrent callers perform one refresh
and a rotated refresh token is never overwritten by a stale one.
"""

import asyncio
import weakref
from datetime import datetime
from typing import Callable

import structlog

from integration_auth.core.errors import (
    ConcurrencyConflictError,
    ConfigurationError,
    DiscoveryError,
    NotConnectedError,
    ReconnectRequiredError,
    TokenRefreshError,
)
from integration_auth.integrations import IntegrationCatalog, IntegrationDefinition
from integration_auth.models.connection import ConnectionKey, ConnectionRecord
from integration_auth.models.integration import utc_now
from integration_auth.services.client_registration import ClientRegistrar
from integration_auth.services.discovery import MetadataDiscovery
from integration_auth.services.oauth_protocol import OAuthProtocolClient, OAuthProtocolError
from integration_auth.services.token_exchange import (
    DEFAULT_TOKEN_EXPIRY_SECONDS,
    calculate_token_expiration,
)
from integration_auth.store.base import IntegrationStore, RecordStore

logger = structlog.get_logger()


class TokenRefresher:
    """Keep OAuth connections supplied with valid access tokens."""

    def __init__(
        self,
        catalog: IntegrationCatalog,
        registrar: ClientRegistrar,
        discovery: MetadataDiscovery,
        protocol: OAuthProtocolClient,
        integration_store: IntegrationStore,
        connection_store: RecordStore[ConnectionKey, ConnectionRecord],
        clock: Callable[[], datetime] = utc_now,
        default_expiry_seconds: int = DEFAULT_TOKEN_EXPIRY_SECONDS,
    ) -> None:
        self._catalog = catalog
        self._registrar = registrar
        self._discovery = discovery
        self._protocol = protocol
        self._integrations = integration_store
        self._connections = connection_store
        self._clock = clock
        self._default_expiry_seconds = default_expiry_seconds
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, integration_key: str, email_account_id: str) -> asyncio.Lock:
        key = (integration_key, email_account_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def ensure_valid(self, integration_key: str, email_account_id: str) -> str:
        """Get a valid access token, refreshing it if expired.

        Args:
            integration_key: OAuth integration
            email_account_id: Account owning the connection

        Returns:
            Access token

        Raises:
            NotConnectedError: If there is no active connection with a token
            ReconnectRequiredError: If the token expired and cannot be refreshed
            TokenRefreshError: If the provider rejects the refresh
        """
        definition = self._catalog.get(integration_key)
        connection = await self._load_active(definition.key, email_account_id)

        if not connection.is_expired(self._clock()):
            return connection.access_token

        async with self._lock_for(definition.key, email_account_id):
            # Another caller may have refreshed while we waited
            connection = await self._load_active(definition.key, email_account_id)
            if not connection.is_expired(self._clock()):
                return connection.access_token

            if not connection.refresh_token:
                logger.warning(
                    "oauth_token_expired_no_refresh_token",
                    integration=definition.key,
                    email_account_id=email_account_id,
                )
                raise ReconnectRequiredError(
                    f"Access token for {definition.key} has expired and no refresh "
                    "token is available. Please reconnect.",
                    integration=definition.key,
                )

            logger.info(
                "oauth_token_expired_refreshing",
                integration=definition.key,
                email_account_id=email_account_id,
            )
            return await self._refresh(definition, connection)

    async def _load_active(self, integration_key: str, email_account_id: str) -> ConnectionRecord:
        connection = None
        integration = await self._integrations.get(integration_key)
        if integration is not None and integration.id is not None:
            connection = await self._connections.get(
                ConnectionKey(email_account_id, integration.id)
            )

        if connection is None or not connection.is_active or not connection.access_token:
            raise NotConnectedError(
                f"No access token found for {integration_key}. "
                "Please connect the integration first.",
                integration=integration_key,
            )
        return connection

    async def _refresh(
        self,
        definition: IntegrationDefinition,
        connection: ConnectionRecord,
    ) -> str:
        log = logger.bind(integration=definition.key, email_account_id=connection.email_account_id)

        if not definition.server_url:
            raise ConfigurationError(
                f"No server URL configured for {definition.key}",
                integration=definition.key,
            )

        client = await self._registrar.get_client(definition.key)
        metadata = await self._discovery.metadata_for(definition)

        if not metadata.token_endpoint:
            raise DiscoveryError(
                f"No token endpoint found for {definition.key}",
                integration=definition.key,
                has_fallback=definition.fallback_oauth_config is not None,
            )

        try:
            tokens = await self._protocol.refresh_authorization(
                metadata.token_endpoint,
                client=client,
                refresh_token=connection.refresh_token,
                resource=definition.server_url,
            )
        except OAuthProtocolError as e:
            log.error(
                "oauth_token_refresh_failed",
                error=e.error,
                error_description=e.error_description,
                status_code=e.status_code,
            )
            raise TokenRefreshError(
                f"Token refresh failed for {definition.key}: {e}",
                integration=definition.key,
                error=e.error,
                error_description=e.error_description,
                status_code=e.status_code,
            ) from e

        expires_at = calculate_token_expiration(
            tokens.expires_in,
            self._clock(),
            integration=definition.key,
            is_refresh=True,
            default_expiry_seconds=self._default_expiry_seconds,
        )
        refreshed = connection.model_copy(
            update={
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token or connection.refresh_token,
                "expires_at": expires_at,
            }
        )

        try:
            await self._connections.put(
                connection.key, refreshed, expected_version=connection.version
            )
        except ConcurrencyConflictError:
            # Another process refreshed first; its token is the one on record
            winner = await self._connections.get(connection.key)
            if (
                winner is not None
                and winner.is_active
                and winner.access_token
                and not winner.is_expired(self._clock())
            ):
                log.info("oauth_token_refresh_superseded")
                return winner.access_token
            raise

        log.info(
            "oauth_token_refreshed",
            rotated_refresh_token=tokens.refresh_token is not None,
            expires_at=expires_at.isoformat(),
        )
        return tokens.access_token
