"""Authorization code exchange.

Completes an authorization flow: trades the code and PKCE verifier for
tokens and stores them on the account's connection.
"""

from datetime import datetime, timedelta
from typing import Callable

import structlog

from integration_auth.core.errors import (
    ConcurrencyConflictError,
    ConfigurationError,
    DiscoveryError,
    TokenExchangeError,
)
from integration_auth.integrations import IntegrationCatalog
from integration_auth.models.connection import ConnectionKey, ConnectionRecord
from integration_auth.models.integration import utc_now
from integration_auth.models.oauth import OAuthTokens
from integration_auth.services.client_registration import ClientRegistrar
from integration_auth.services.discovery import MetadataDiscovery
from integration_auth.services.oauth_protocol import OAuthProtocolClient, OAuthProtocolError
from integration_auth.store.base import (
    MAX_UPDATE_ATTEMPTS,
    IntegrationStore,
    RecordStore,
    ensure_integration,
)

logger = structlog.get_logger()

DEFAULT_TOKEN_EXPIRY_SECONDS = 60 * 60


def calculate_token_expiration(
    expires_in: int | None,
    now: datetime,
    *,
    integration: str | None = None,
    is_refresh: bool = False,
    default_expiry_seconds: int = DEFAULT_TOKEN_EXPIRY_SECONDS,
) -> datetime:
    """Compute when an access token expires.

    Providers that omit ``expires_in`` get a conservative default so the
    token is refreshed proactively rather than never.
    """
    if expires_in:
        return now + timedelta(seconds=expires_in)

    logger.warning(
        "oauth_expires_in_missing",
        integration=integration,
        is_refresh=is_refresh,
        default_expiry_seconds=default_expiry_seconds,
    )
    return now + timedelta(seconds=default_expiry_seconds)


class TokenExchanger:
    """Exchange authorization codes and persist the resulting tokens."""

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

    async def exchange(
        self,
        integration_key: str,
        code: str,
        code_verifier: str,
        redirect_uri: str,
        email_account_id: str,
    ) -> OAuthTokens:
        """Exchange an authorization code and store the tokens.

        Args:
            integration_key: Integration being connected
            code: Authorization code from the callback
            code_verifier: PKCE verifier returned by start_flow
            redirect_uri: Same redirect URI used to start the flow
            email_account_id: Account the connection belongs to

        Returns:
            Tokens returned by the provider

        Raises:
            ConfigurationError: If the integration has no server URL
            DiscoveryError: If no token endpoint can be found
            TokenExchangeError: If the provider rejects the exchange
        """
        definition = self._catalog.get(integration_key)
        log = logger.bind(integration=definition.key, email_account_id=email_account_id)

        if not definition.server_url:
            raise ConfigurationError(
                f"No server URL configured for {definition.key}",
                integration=definition.key,
            )

        client = await self._registrar.get_client(definition.key, redirect_uri)
        metadata = await self._discovery.metadata_for(definition)

        if not metadata.token_endpoint:
            raise DiscoveryError(
                f"No token endpoint found for {definition.key}",
                integration=definition.key,
                has_fallback=definition.fallback_oauth_config is not None,
            )

        try:
            tokens = await self._protocol.exchange_authorization(
                metadata.token_endpoint,
                client=client,
                code=code,
                code_verifier=code_verifier,
                redirect_uri=redirect_uri,
                resource=definition.server_url,
            )
        except OAuthProtocolError as e:
            log.error(
                "oauth_code_exchange_failed",
                error=e.error,
                error_description=e.error_description,
                status_code=e.status_code,
            )
            raise TokenExchangeError(
                f"Token exchange failed for {definition.key}: {e}",
                integration=definition.key,
                error=e.error,
                error_description=e.error_description,
                status_code=e.status_code,
            ) from e

        integration = await ensure_integration(self._integrations, definition.key)
        expires_at = calculate_token_expiration(
            tokens.expires_in,
            self._clock(),
            integration=definition.key,
            default_expiry_seconds=self._default_expiry_seconds,
        )

        await self._store_connection(
            ConnectionKey(email_account_id, integration.id),
            definition.key,
            tokens,
            expires_at,
        )

        log.info(
            "oauth_callback_completed",
            has_refresh_token=tokens.refresh_token is not None,
            expires_at=expires_at.isoformat(),
        )
        return tokens

    async def _store_connection(
        self,
        key: ConnectionKey,
        name: str,
        tokens: OAuthTokens,
        expires_at: datetime,
    ) -> ConnectionRecord:
        for _ in range(MAX_UPDATE_ATTEMPTS):
            existing = await self._connections.get(key)
            if existing is None:
                record = ConnectionRecord(
                    name=name,
                    email_account_id=key.email_account_id,
                    integration_id=key.integration_id,
                    access_token=tokens.access_token,
                    refresh_token=tokens.refresh_token or None,
                    expires_at=expires_at,
                    is_active=True,
                )
                expected_version = 0
            else:
                # Providers that do not rotate refresh tokens omit them here
                record = existing.model_copy(
                    update={
                        "access_token": tokens.access_token,
                        "refresh_token": tokens.refresh_token or existing.refresh_token,
                        "expires_at": expires_at,
                        "is_active": True,
                    }
                )
                expected_version = existing.version

            try:
                return await self._connections.put(key, record, expected_version=expected_version)
            except ConcurrencyConflictError:
                logger.debug(
                    "connection_write_conflict",
                    integration=name,
                    email_account_id=key.email_account_id,
                )

        raise ConcurrencyConflictError(
            f"Connection for {name} kept changing while storing tokens"
        )
