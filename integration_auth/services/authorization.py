"""Authorization flow initiation.

Builds the URL the user is redirected to when connecting an integration.
The returned code verifier must travel with the user (e.g. in a short-lived
cookie) and be presented again to the token exchanger; it is not persisted.
"""

import structlog

from integration_auth.core.errors import ConfigurationError, DiscoveryError
from integration_auth.core.pkce import generate_state
from integration_auth.integrations import IntegrationCatalog
from integration_auth.models.oauth import AuthorizationStart
from integration_auth.services.client_registration import ClientRegistrar
from integration_auth.services.discovery import MetadataDiscovery
from integration_auth.services.oauth_protocol import OAuthProtocolClient

logger = structlog.get_logger()


class AuthorizationFlow:
    """Start OAuth authorization code flows with PKCE.

    Example usage:
        state = flow.generate_state()
        start = await flow.start_flow("notion", redirect_uri, state)
        # redirect to start.authorization_url, keep start.code_verifier
    """

    def __init__(
        self,
        catalog: IntegrationCatalog,
        registrar: ClientRegistrar,
        discovery: MetadataDiscovery,
        protocol: OAuthProtocolClient,
    ) -> None:
        self._catalog = catalog
        self._registrar = registrar
        self._discovery = discovery
        self._protocol = protocol

    def generate_state(self) -> str:
        """Generate a secure random state parameter.

        Returns:
            URL-safe random string for CSRF protection
        """
        return generate_state()

    async def start_flow(
        self,
        integration_key: str,
        redirect_uri: str,
        state: str,
    ) -> AuthorizationStart:
        """Build the authorization URL for an integration.

        Args:
            integration_key: Integration to connect
            redirect_uri: Callback URL registered with the client
            state: Opaque CSRF state echoed back on the callback

        Returns:
            Authorization URL and the PKCE code verifier

        Raises:
            ConfigurationError: If the integration has no server URL
            DiscoveryError: If no authorization endpoint can be found
            RegistrationError: If no OAuth client can be obtained
        """
        definition = self._catalog.get(integration_key)
        if not definition.server_url:
            raise ConfigurationError(
                f"No server URL configured for {definition.key}",
                integration=definition.key,
            )

        client = await self._registrar.get_client(definition.key, redirect_uri)
        metadata = await self._discovery.metadata_for(definition)

        if not metadata.authorization_endpoint:
            raise DiscoveryError(
                f"No authorization endpoint found for {definition.key}. "
                "OAuth discovery may have failed.",
                integration=definition.key,
                has_fallback=definition.fallback_oauth_config is not None,
            )

        authorization_url, code_verifier = self._protocol.build_authorization_url(
            metadata.authorization_endpoint,
            client=client,
            redirect_uri=redirect_uri,
            state=state,
            resource=definition.server_url,
            scope=definition.scope or None,
        )

        logger.info("oauth_flow_started", integration=definition.key)

        return AuthorizationStart(
            authorization_url=authorization_url,
            code_verifier=code_verifier,
        )
