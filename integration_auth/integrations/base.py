"""Base types for integration definitions.

An integration definition is static configuration: where the MCP server
lives, which scopes to request and how the user authenticates to it.
"""

from dataclasses import dataclass
from enum import Enum


class AuthType(str, Enum):
    """How a user authenticates to an integration."""

    OAUTH = "oauth"
    API_TOKEN = "api-token"


@dataclass(frozen=True)
class StaticCredentials:
    """Pre-registered OAuth client for an integration."""

    client_id: str
    client_secret: str | None = None


@dataclass(frozen=True)
class FallbackOAuthConfig:
    """Endpoints used when authorization server discovery fails."""

    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str | None = None


@dataclass(frozen=True)
class IntegrationDefinition:
    """Configuration for an integration."""

    key: str
    display_name: str
    server_url: str | None
    scopes: tuple[str, ...] = ()
    auth_type: AuthType = AuthType.OAUTH
    static_credentials: StaticCredentials | None = None
    fallback_oauth_config: FallbackOAuthConfig | None = None
    description: str | None = None

    @property
    def scope(self) -> str:
        """Scopes as the space-separated OAuth ``scope`` value."""
        return " ".join(self.scopes)

    @property
    def uses_oauth(self) -> bool:
        return self.auth_type == AuthType.OAUTH


def oauth_server_url(definition: IntegrationDefinition) -> str:
    """Get the URL OAuth discovery runs against.

    MCP servers commonly serve the protocol at ``https://mcp.example.com/mcp``
    and OAuth at ``https://mcp.example.com``, so a trailing ``/mcp`` is dropped.
    """
    server_url = definition.server_url or ""
    if server_url.endswith("/mcp"):
        return server_url[: -len("/mcp")]
    return server_url
