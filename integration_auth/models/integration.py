"""Integration entity model.

One row per integration key, created lazily on first use. Holds the cached
authorization server endpoints and any dynamically registered OAuth client.
The client secret is Fernet-encrypted at rest.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlmodel import Column, Field, SQLModel, Text


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class MCPIntegration(SQLModel, table=True):
    """Integration database entity.

    The discovery cache columns are only valid while ``registered_server_url``
    equals the integration's configured OAuth server URL.
    """

    __tablename__ = "mcp_integration"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique integration identifier (UUID)",
    )
    name: str = Field(
        max_length=100,
        unique=True,
        index=True,
        description="Integration key from the catalog",
    )
    registered_authorization_url: str | None = Field(default=None, max_length=2048)
    registered_token_url: str | None = Field(default=None, max_length=2048)
    registered_registration_url: str | None = Field(default=None, max_length=2048)
    registered_server_url: str | None = Field(
        default=None,
        max_length=2048,
        description="Server URL the cached endpoints were discovered for",
    )
    oauth_client_id: str | None = Field(default=None, max_length=255)
    encrypted_client_secret: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="Fernet-encrypted JSON holding the registered client secret",
    )
    version: int = Field(default=1, description="Optimistic concurrency version")
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column_kwargs={"onupdate": utc_now},
        description="Last update timestamp (UTC)",
    )


class IntegrationRecord(SQLModel):
    """Decrypted integration record as seen by services.

    ``id`` and ``version`` are None/0 until the record is first stored.
    """

    id: str | None = None
    name: str
    registered_authorization_url: str | None = None
    registered_token_url: str | None = None
    registered_registration_url: str | None = None
    registered_server_url: str | None = None
    oauth_client_id: str | None = None
    oauth_client_secret: str | None = None
    version: int = 0

    def has_cached_metadata_for(self, server_url: str) -> bool:
        """Whether cached endpoints exist and were discovered for server_url."""
        return bool(
            self.registered_authorization_url
            and self.registered_token_url
            and self.registered_server_url == server_url
        )
