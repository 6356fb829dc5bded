"""Integration catalog.

Central lookup of integration definitions by key.
"""

from typing import Any, Iterable

import structlog

from integration_auth.config import Settings
from integration_auth.core.errors import ConfigurationError, IntegrationNotFoundError
from integration_auth.integrations.base import IntegrationDefinition
from integration_auth.integrations.definitions import builtin_integrations

logger = structlog.get_logger()


class IntegrationCatalog:
    """Catalog of integrations the application can connect to.

    Provides:
    - Definition lookup (fails fast on unknown keys)
    - Listing for operators and UIs

    Example usage:
        catalog = IntegrationCatalog.from_settings(settings)
        notion = catalog.get("notion")
    """

    def __init__(self, definitions: Iterable[IntegrationDefinition] = ()) -> None:
        """Initialize catalog with integration definitions."""
        self._integrations: dict[str, IntegrationDefinition] = {}
        for definition in definitions:
            self.register(definition)

    @classmethod
    def from_settings(cls, settings: Settings) -> "IntegrationCatalog":
        """Build the catalog of built-in integrations."""
        return cls(builtin_integrations(settings))

    def register(self, definition: IntegrationDefinition) -> None:
        """Add an integration definition.

        Raises:
            ConfigurationError: If the key is already registered
        """
        key = definition.key.lower()
        if key in self._integrations:
            raise ConfigurationError(
                f"Integration already registered: {definition.key}",
                integration=definition.key,
            )
        self._integrations[key] = definition
        logger.debug(
            "integration_registered",
            integration=key,
            auth_type=definition.auth_type.value,
            has_static_credentials=definition.static_credentials is not None,
        )

    def get(self, key: str) -> IntegrationDefinition:
        """Get integration definition by key.

        Raises:
            IntegrationNotFoundError: If the key is unknown
        """
        definition = self._integrations.get(key.lower())
        if definition is None:
            raise IntegrationNotFoundError(
                f"Integration not found: {key}. "
                f"Available: {list(self._integrations.keys())}",
                integration=key,
            )
        return definition

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._integrations

    def list_integrations(self) -> list[dict[str, Any]]:
        """List all integrations.

        Returns:
            List of integration info dicts
        """
        return [
            {
                "key": key,
                "display_name": definition.display_name,
                "auth_type": definition.auth_type.value,
                "server_url": definition.server_url,
                "configured": definition.static_credentials is not None,
                "has_fallback": definition.fallback_oauth_config is not None,
            }
            for key, definition in self._integrations.items()
        ]
