"""Integrations module.

Integration definitions describe an MCP server, its scopes and auth type.
Built-in definitions live in ``definitions.py``; the catalog looks them up.
"""

from integration_auth.integrations.base import (
    AuthType,
    FallbackOAuthConfig,
    IntegrationDefinition,
    StaticCredentials,
    oauth_server_url,
)
from integration_auth.integrations.registry import IntegrationCatalog

__all__ = [
    "AuthType",
    "FallbackOAuthConfig",
    "IntegrationCatalog",
    "IntegrationDefinition",
    "StaticCredentials",
    "oauth_server_url",
]
