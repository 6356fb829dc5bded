"""Connection entity model.

One row per (email account, integration) pair. Holds the OAuth tokens or the
API key the account uses for that integration. All secret values are
Fernet-encrypted together in ``encrypted_data``.
"""

from datetime import datetime
from typing import NamedTuple
from uuid import uuid4

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Column, Field, SQLModel, Text

from integration_auth.models.integration import utc_now


class ConnectionKey(NamedTuple):
    """Store key of a connection."""

    email_account_id: str
    integration_id: str


class MCPConnection(SQLModel, table=True):
    """Connection database entity.

    SECURITY NOTES:
    - Never log decrypted token values
    - encrypted_data holds access_token, refresh_token and api_key
    """

    __tablename__ = "mcp_connection"
    __table_args__ = (
        UniqueConstraint(
            "email_account_id",
            "integration_id",
            name="uq_mcp_connection_email_account_integration",
        ),
    )

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique connection identifier (UUID)",
    )
    name: str = Field(max_length=100, description="Integration key")
    email_account_id: str = Field(
        max_length=255,
        index=True,
        description="Owning email account ID",
    )
    integration_id: str = Field(
        foreign_key="mcp_integration.id",
        index=True,
        description="Integration this connection authenticates to",
    )
    encrypted_data: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="Fernet-encrypted JSON secret data",
    )
    expires_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
        description="Access token expiry (UTC); null means no expiry known",
    )
    is_active: bool = Field(default=True)
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


class ConnectionRecord(SQLModel):
    """Decrypted connection record as seen by services.

    SECURITY WARNING: exposes decrypted token values. Never log it.
    """

    id: str | None = None
    name: str
    email_account_id: str
    integration_id: str
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None
    is_active: bool = True
    api_key: str | None = None
    version: int = 0

    @property
    def key(self) -> ConnectionKey:
        return ConnectionKey(self.email_account_id, self.integration_id)

    def is_expired(self, now: datetime) -> bool:
        """Whether the access token expired before now. Null expiry never expires."""
        return self.expires_at is not None and self.expires_at < now
