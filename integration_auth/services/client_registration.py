"""OAuth client resolution.

Finds the OAuth client to use for an integration. The first match wins:

1. Static credentials from the integration catalog
2. A client stored from an earlier dynamic registration
3. A new dynamic registration (RFC 7591), persisted for reuse
"""

import structlog

from integration_auth.config import Settings
from integration_auth.core.encryption import mask_credential_value
from integration_auth.core.errors import ConfigurationError, RegistrationError
from integration_auth.integrations import IntegrationCatalog, oauth_server_url
from integration_auth.models.oauth import ClientInformation, ClientRegistrationRequest
from integration_auth.services.discovery import MetadataDiscovery
from integration_auth.services.oauth_protocol import OAuthProtocolClient, OAuthProtocolError
from integration_auth.store.base import IntegrationStore, update_integration

logger = structlog.get_logger()


class ClientRegistrar:
    """Resolve OAuth client credentials for integrations."""

    def __init__(
        self,
        settings: Settings,
        catalog: IntegrationCatalog,
        integration_store: IntegrationStore,
        discovery: MetadataDiscovery,
        protocol: OAuthProtocolClient,
    ) -> None:
        self._settings = settings
        self._catalog = catalog
        self._store = integration_store
        self._discovery = discovery
        self._protocol = protocol

    async def get_client(
        self,
        integration_key: str,
        redirect_uri: str | None = None,
    ) -> ClientInformation:
        """Get the OAuth client for an integration.

        Args:
            integration_key: Integration to resolve the client for
            redirect_uri: Callback URL, required only when registering

        Returns:
            Client information (client_id, optional client_secret)

        Raises:
            ConfigurationError: If registration is needed but the server URL
                or redirect URI is missing
            DiscoveryError: If the authorization server cannot be found
            RegistrationError: If the server does not support or rejects
                dynamic registration
        """
        definition = self._catalog.get(integration_key)
        log = logger.bind(integration=definition.key)

        static = definition.static_credentials
        if static is not None and static.client_id:
            log.debug("oauth_client_static")
            return ClientInformation(
                client_id=static.client_id,
                client_secret=static.client_secret,
            )

        stored = await self._store.get(definition.key)
        if stored is not None and stored.oauth_client_id:
            log.debug("oauth_client_stored")
            return ClientInformation(
                client_id=stored.oauth_client_id,
                client_secret=stored.oauth_client_secret,
            )

        if not definition.server_url:
            raise ConfigurationError(
                f"No server URL configured for {definition.key}",
                integration=definition.key,
            )
        if not redirect_uri:
            raise ConfigurationError(
                f"redirect_uri is required for dynamic client registration for {definition.key}",
                integration=definition.key,
            )

        log.info("oauth_client_registration_started")
        metadata = await self._discovery.discover(
            oauth_server_url(definition), definition.key
        )

        if not metadata.registration_endpoint:
            log.warning("oauth_dynamic_registration_unsupported")
            raise RegistrationError(
                f"Dynamic registration not supported for {definition.key}. "
                "Please configure static OAuth credentials.",
                integration=definition.key,
            )

        request = ClientRegistrationRequest(
            client_name=self._settings.oauth_client_name,
            redirect_uris=[redirect_uri],
            scope=definition.scope or None,
        )
        try:
            registered = await self._protocol.register_client(
                metadata.registration_endpoint, request
            )
        except OAuthProtocolError as e:
            log.error(
                "oauth_client_registration_failed",
                error=e.error,
                error_description=e.error_description,
                status_code=e.status_code,
            )
            raise RegistrationError(
                f"Dynamic client registration failed for {definition.key}: {e}",
                integration=definition.key,
                error=e.error,
                error_description=e.error_description,
                status_code=e.status_code,
            ) from e

        await update_integration(
            self._store,
            definition.key,
            oauth_client_id=registered.client_id,
            oauth_client_secret=registered.client_secret,
        )

        log.info(
            "oauth_client_registered",
            client_id=mask_credential_value(registered.client_id),
            has_client_secret=registered.client_secret is not None,
        )
        return ClientInformation(
            client_id=registered.client_id,
            client_secret=registered.client_secret,
        )
