"""Data models - SQLModel entities, records and OAuth wire models."""

from integration_auth.models.connection import ConnectionKey, ConnectionRecord, MCPConnection
from integration_auth.models.integration import IntegrationRecord, MCPIntegration, utc_now
from integration_auth.models.oauth import (
    AuthorizationStart,
    AuthServerMetadata,
    ClientInformation,
    ClientRegistrationRequest,
    OAuthTokens,
    ProtectedResourceMetadata,
)

__all__ = [
    "AuthorizationStart",
    "AuthServerMetadata",
    "ClientInformation",
    "ClientRegistrationRequest",
    "ConnectionKey",
    "ConnectionRecord",
    "IntegrationRecord",
    "MCPConnection",
    "MCPIntegration",
    "OAuthTokens",
    "ProtectedResourceMetadata",
    "utc_now",
]
