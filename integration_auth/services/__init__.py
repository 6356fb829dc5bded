"""Services layer - OAuth discovery, registration and token lifecycle."""

from integration_auth.services.auth_token import AuthTokenProvider
from integration_auth.services.authorization import AuthorizationFlow
from integration_auth.services.client_registration import ClientRegistrar
from integration_auth.services.discovery import (
    CacheStrategy,
    DiscoveryOutcome,
    DiscoveryStrategy,
    LiveDiscoveryStrategy,
    MetadataDiscovery,
    StaticFallbackStrategy,
)
from integration_auth.services.oauth_protocol import OAuthProtocolClient, OAuthProtocolError
from integration_auth.services.token_exchange import TokenExchanger, calculate_token_expiration
from integration_auth.services.token_refresh import TokenRefresher

__all__ = [
    "AuthTokenProvider",
    "AuthorizationFlow",
    "CacheStrategy",
    "ClientRegistrar",
    "DiscoveryOutcome",
    "DiscoveryStrategy",
    "LiveDiscoveryStrategy",
    "MetadataDiscovery",
    "OAuthProtocolClient",
    "OAuthProtocolError",
    "StaticFallbackStrategy",
    "TokenExchanger",
    "TokenRefresher",
    "calculate_token_expiration",
]
