"""Authorization server metadata discovery.

Resolves the OAuth endpoints of an integration by running an ordered list of
named strategies until one succeeds:

1. ``cache`` - endpoints stored for the same server URL (no network)
2. ``live`` - RFC 9728 then RFC 8414 discovery against the server
3. ``static-fallback`` - endpoints configured in the integration catalog

Live and fallback results are written back as the cache.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

import structlog

from integration_auth.core.errors import DiscoveryError
from integration_auth.integrations import IntegrationCatalog, IntegrationDefinition, oauth_server_url
from integration_auth.models.integration import IntegrationRecord
from integration_auth.models.oauth import AuthServerMetadata
from integration_auth.services.oauth_protocol import OAuthProtocolClient, OAuthProtocolError
from integration_auth.store.base import IntegrationStore, update_integration

logger = structlog.get_logger()


@dataclass(frozen=True)
class DiscoveryRequest:
    """Input shared by every strategy of one discovery run."""

    server_url: str
    definition: IntegrationDefinition
    cached: IntegrationRecord | None


@dataclass(frozen=True)
class DiscoveryOutcome:
    """Result of one strategy: metadata on success, a reason on failure."""

    strategy: str
    metadata: AuthServerMetadata | None = None
    reason: str | None = None
    cacheable: bool = False

    @property
    def succeeded(self) -> bool:
        return self.metadata is not None

    @classmethod
    def success(
        cls,
        strategy: str,
        metadata: AuthServerMetadata,
        cacheable: bool = True,
    ) -> "DiscoveryOutcome":
        return cls(strategy=strategy, metadata=metadata, cacheable=cacheable)

    @classmethod
    def failure(cls, strategy: str, reason: str) -> "DiscoveryOutcome":
        return cls(strategy=strategy, reason=reason)


class DiscoveryStrategy(ABC):
    """One way of obtaining authorization server metadata."""

    name: str

    @abstractmethod
    async def attempt(self, request: DiscoveryRequest) -> DiscoveryOutcome:
        ...


class CacheStrategy(DiscoveryStrategy):
    """Use endpoints cached for the same server URL."""

    name = "cache"

    async def attempt(self, request: DiscoveryRequest) -> DiscoveryOutcome:
        cached = request.cached
        if cached is None:
            return DiscoveryOutcome.failure(self.name, "no cached metadata")
        if not cached.has_cached_metadata_for(request.server_url):
            return DiscoveryOutcome.failure(
                self.name,
                "cached metadata missing or discovered for a different server URL",
            )

        metadata = AuthServerMetadata.from_endpoints(
            request.server_url,
            cached.registered_authorization_url,
            cached.registered_token_url,
            cached.registered_registration_url,
        )
        return DiscoveryOutcome.success(self.name, metadata, cacheable=False)


class LiveDiscoveryStrategy(DiscoveryStrategy):
    """Discover metadata from the authorization server."""

    name = "live"

    def __init__(self, protocol: OAuthProtocolClient) -> None:
        self._protocol = protocol

    async def attempt(self, request: DiscoveryRequest) -> DiscoveryOutcome:
        log = logger.bind(integration=request.definition.key, server_url=request.server_url)
        auth_server_url = request.server_url

        # Protected resource metadata is optional
        try:
            resource_metadata = await self._protocol.discover_protected_resource_metadata(
                request.server_url
            )
        except OAuthProtocolError as e:
            log.info("protected_resource_metadata_unavailable", error=str(e))
            resource_metadata = None

        if resource_metadata and resource_metadata.authorization_servers:
            auth_server_url = resource_metadata.authorization_servers[0]
            log.info("authorization_server_from_resource_metadata", auth_server_url=auth_server_url)

        try:
            metadata = await self._protocol.discover_authorization_server_metadata(
                auth_server_url
            )
        except OAuthProtocolError as e:
            return DiscoveryOutcome.failure(self.name, str(e))

        if metadata is None:
            return DiscoveryOutcome.failure(
                self.name,
                f"no authorization server metadata published at {auth_server_url}",
            )
        return DiscoveryOutcome.success(self.name, metadata)


class StaticFallbackStrategy(DiscoveryStrategy):
    """Use the endpoints configured in the integration catalog."""

    name = "static-fallback"

    async def attempt(self, request: DiscoveryRequest) -> DiscoveryOutcome:
        fallback = request.definition.fallback_oauth_config
        if fallback is None:
            return DiscoveryOutcome.failure(self.name, "no fallback OAuth config")

        metadata = AuthServerMetadata.from_endpoints(
            request.server_url,
            fallback.authorization_endpoint,
            fallback.token_endpoint,
            fallback.registration_endpoint,
        )
        return DiscoveryOutcome.success(self.name, metadata)


class MetadataDiscovery:
    """Resolve and cache authorization server metadata per integration.

    Example usage:
        discovery = MetadataDiscovery(catalog, integration_store, protocol)
        metadata = await discovery.metadata_for(catalog.get("notion"))
    """

    def __init__(
        self,
        catalog: IntegrationCatalog,
        integration_store: IntegrationStore,
        protocol: OAuthProtocolClient,
        strategies: Sequence[DiscoveryStrategy] | None = None,
    ) -> None:
        self._catalog = catalog
        self._store = integration_store
        self._strategies = tuple(
            strategies
            if strategies is not None
            else (
                CacheStrategy(),
                LiveDiscoveryStrategy(protocol),
                StaticFallbackStrategy(),
            )
        )

    @property
    def strategy_names(self) -> tuple[str, ...]:
        return tuple(strategy.name for strategy in self._strategies)

    async def metadata_for(self, definition: IntegrationDefinition) -> AuthServerMetadata:
        """Discover metadata at the integration's OAuth server URL."""
        return await self.discover(oauth_server_url(definition), definition.key)

    async def discover(self, server_url: str, integration_key: str) -> AuthServerMetadata:
        """Run the strategies in order and return the first metadata found.

        Raises:
            IntegrationNotFoundError: If the integration is unknown
            DiscoveryError: If every strategy fails
        """
        definition = self._catalog.get(integration_key)
        log = logger.bind(integration=definition.key, server_url=server_url)

        request = DiscoveryRequest(
            server_url=server_url,
            definition=definition,
            cached=await self._store.get(definition.key),
        )

        failures: list[DiscoveryOutcome] = []
        for strategy in self._strategies:
            outcome = await strategy.attempt(request)
            if not outcome.succeeded:
                log.debug(
                    "oauth_discovery_strategy_failed",
                    strategy=outcome.strategy,
                    reason=outcome.reason,
                )
                failures.append(outcome)
                continue

            if failures and outcome.strategy == StaticFallbackStrategy.name:
                log.warning(
                    "oauth_discovery_using_fallback",
                    failures={f.strategy: f.reason for f in failures},
                )

            if outcome.cacheable:
                await self._cache(definition.key, server_url, outcome.metadata)

            log.info(
                "oauth_metadata_resolved",
                strategy=outcome.strategy,
                authorization_endpoint=outcome.metadata.authorization_endpoint,
                token_endpoint=outcome.metadata.token_endpoint,
                registration_endpoint=outcome.metadata.registration_endpoint,
            )
            return outcome.metadata

        reasons = {f.strategy: f.reason for f in failures}
        has_fallback = definition.fallback_oauth_config is not None
        log.error("oauth_discovery_failed", failures=reasons, has_fallback=has_fallback)
        raise DiscoveryError(
            f"Could not discover OAuth endpoints for {definition.key}: "
            f"{reasons.get(LiveDiscoveryStrategy.name, 'discovery failed')}. "
            "Server may not support OAuth discovery and no fallback config is available.",
            integration=definition.key,
            cause=reasons.get(LiveDiscoveryStrategy.name),
            has_fallback=has_fallback,
        )

    async def _cache(
        self,
        integration_key: str,
        server_url: str,
        metadata: AuthServerMetadata,
    ) -> None:
        # Client credentials on the record are left untouched
        await update_integration(
            self._store,
            integration_key,
            registered_authorization_url=metadata.authorization_endpoint,
            registered_token_url=metadata.token_endpoint,
            registered_registration_url=metadata.registration_endpoint,
            registered_server_url=server_url,
        )
