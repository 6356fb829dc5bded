"""Integration and connection tables

Revision ID: 001
Revises:
Create Date: 2025-11-03 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # One row per integration: discovery cache and registered client
    op.create_table(
        "mcp_integration",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("registered_authorization_url", sa.String(length=2048), nullable=True),
        sa.Column("registered_token_url", sa.String(length=2048), nullable=True),
        sa.Column("registered_registration_url", sa.String(length=2048), nullable=True),
        sa.Column("registered_server_url", sa.String(length=2048), nullable=True),
        sa.Column("oauth_client_id", sa.String(length=255), nullable=True),
        sa.Column("encrypted_client_secret", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_mcp_integration_name"), "mcp_integration", ["name"], unique=True)

    # One row per (email account, integration)
    op.create_table(
        "mcp_connection",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email_account_id", sa.String(length=255), nullable=False),
        sa.Column("integration_id", sa.String(), nullable=False),
        sa.Column("encrypted_data", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["integration_id"], ["mcp_integration.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "email_account_id",
            "integration_id",
            name="uq_mcp_connection_email_account_integration",
        ),
    )
    op.create_index(
        op.f("ix_mcp_connection_email_account_id"),
        "mcp_connection",
        ["email_account_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_mcp_connection_integration_id"),
        "mcp_connection",
        ["integration_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_table("mcp_connection")
    op.drop_table("mcp_integration")
