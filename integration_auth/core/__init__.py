"""Core layer - Errors, encryption and PKCE primitives."""

from integration_auth.core.encryption import CredentialEncryption
from integration_auth.core.errors import (
    ConcurrencyConflictError,
    ConfigurationError,
    DiscoveryError,
    IntegrationAuthError,
    IntegrationNotFoundError,
    NotConnectedError,
    ReconnectRequiredError,
    RegistrationError,
    TokenExchangeError,
    TokenRefreshError,
)

__all__ = [
    "ConcurrencyConflictError",
    "ConfigurationError",
    "CredentialEncryption",
    "DiscoveryError",
    "IntegrationAuthError",
    "IntegrationNotFoundError",
    "NotConnectedError",
    "ReconnectRequiredError",
    "RegistrationError",
    "TokenExchangeError",
    "TokenRefreshError",
]
