"""Built-in integration definitions.

Adding an integration means adding one definition here; OAuth endpoints are
discovered at runtime, so only servers without discovery need a fallback.
"""

from integration_auth.config import Settings
from integration_auth.integrations.base import (
    AuthType,
    FallbackOAuthConfig,
    IntegrationDefinition,
    StaticCredentials,
)


def _static_credentials(settings: Settings, key: str) -> StaticCredentials | None:
    client_id, client_secret = settings.get_static_client(key)
    if not client_id:
        return None
    return StaticCredentials(client_id=client_id, client_secret=client_secret)


def builtin_integrations(settings: Settings) -> list[IntegrationDefinition]:
    """Get the integrations shipped with the application."""
    return [
        IntegrationDefinition(
            key="notion",
            display_name="Notion",
            server_url="https://mcp.notion.com/mcp",
            description="Search and read pages from a Notion workspace",
            static_credentials=_static_credentials(settings, "notion"),
        ),
        IntegrationDefinition(
            key="linear",
            display_name="Linear",
            server_url="https://mcp.linear.app/mcp",
            scopes=("read",),
            description="Look up Linear issues and projects",
            static_credentials=_static_credentials(settings, "linear"),
        ),
        IntegrationDefinition(
            key="stripe",
            display_name="Stripe",
            server_url="https://mcp.stripe.com",
            description="Look up customers, invoices and subscriptions",
            static_credentials=_static_credentials(settings, "stripe"),
            fallback_oauth_config=FallbackOAuthConfig(
                authorization_endpoint="https://marketplace.stripe.com/oauth/v2/authorize",
                token_endpoint="https://marketplace.stripe.com/oauth/v2/token",
                registration_endpoint="https://marketplace.stripe.com/oauth/v2/register",
            ),
        ),
        IntegrationDefinition(
            key="monday",
            display_name="Monday.com",
            server_url=None,
            auth_type=AuthType.API_TOKEN,
            description="Read boards and items with a personal API token",
        ),
    ]
