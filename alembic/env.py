"""Alembic environment configuration.

Migrates the integration and connection tables. Runs with a synchronous
driver; the application itself uses the async URL from DATABASE_URL.
"""

import os
from logging.config import fileConfig

from dotenv import load_dotenv
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection
from sqlmodel import SQLModel

from alembic import context

load_dotenv()

# Register tables on SQLModel.metadata
from integration_auth.models.connection import MCPConnection  # noqa: E402,F401
from integration_auth.models.integration import MCPIntegration  # noqa: E402,F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def get_url() -> str:
    """Get the sync database URL.

    DATABASE_URL_SYNC wins over ``sqlalchemy.url`` in alembic.ini.
    """
    return os.getenv("DATABASE_URL_SYNC") or config.get_main_option(
        "sqlalchemy.url", "sqlite:///./integration_auth.db"
    )


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting to a database."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=True,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live connection."""
    connectable = create_engine(get_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        do_run_migrations(connection)

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
