"""Service wiring.

Builds the object graph once at process start. Long-lived resources (the
database engine and the HTTP client) are created and owned by the caller and
passed in, so tests can substitute an in-memory database and a mock transport.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from integration_auth.config import Settings
from integration_auth.core.encryption import CredentialEncryption
from integration_auth.integrations import IntegrationCatalog
from integration_auth.models.integration import utc_now
from integration_auth.services.auth_token import AuthTokenProvider
from integration_auth.services.authorization import AuthorizationFlow
from integration_auth.services.client_registration import ClientRegistrar
from integration_auth.services.discovery import MetadataDiscovery
from integration_auth.services.oauth_protocol import OAuthProtocolClient
from integration_auth.services.token_exchange import TokenExchanger
from integration_auth.services.token_refresh import TokenRefresher
from integration_auth.store.sql import SQLConnectionStore, SQLIntegrationStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class AuthServices:
    """Every service of the authorization manager, wired together."""

    catalog: IntegrationCatalog
    integration_store: SQLIntegrationStore
    connection_store: SQLConnectionStore
    protocol: OAuthProtocolClient
    discovery: MetadataDiscovery
    registrar: ClientRegistrar
    authorization: AuthorizationFlow
    exchanger: TokenExchanger
    refresher: TokenRefresher
    tokens: AuthTokenProvider


def create_engine_and_sessionmaker(settings: Settings) -> tuple[AsyncEngine, sessionmaker]:
    """Create the async database engine and its session factory."""
    engine = create_async_engine(
        settings.database_url,
        echo=settings.database_echo,
    )
    session_maker = sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_maker


async def init_db(engine: AsyncEngine) -> None:
    """Create database tables.

    Only call during development. Use Alembic migrations in production.
    """
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("database_initialized")


def build_auth_services(
    settings: Settings,
    session_maker: sessionmaker,
    http_client: httpx.AsyncClient,
    catalog: IntegrationCatalog | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> AuthServices:
    """Wire the authorization services.

    Args:
        settings: Application settings
        session_maker: Async session factory for the record stores
        http_client: Shared client for authorization server requests
        catalog: Integration catalog, built-in integrations by default
        clock: Source of the current UTC time

    Returns:
        Wired services
    """
    catalog = catalog if catalog is not None else IntegrationCatalog.from_settings(settings)
    encryption = CredentialEncryption(settings.encryption_key.get_secret_value())

    integration_store = SQLIntegrationStore(session_maker, encryption)
    connection_store = SQLConnectionStore(session_maker, encryption)
    protocol = OAuthProtocolClient(http_client, timeout=settings.oauth_http_timeout)

    discovery = MetadataDiscovery(catalog, integration_store, protocol)
    registrar = ClientRegistrar(settings, catalog, integration_store, discovery, protocol)
    authorization = AuthorizationFlow(catalog, registrar, discovery, protocol)
    exchanger = TokenExchanger(
        catalog,
        registrar,
        discovery,
        protocol,
        integration_store,
        connection_store,
        clock=clock,
        default_expiry_seconds=settings.default_token_expiry_seconds,
    )
    refresher = TokenRefresher(
        catalog,
        registrar,
        discovery,
        protocol,
        integration_store,
        connection_store,
        clock=clock,
        default_expiry_seconds=settings.default_token_expiry_seconds,
    )
    tokens = AuthTokenProvider(catalog, integration_store, connection_store, refresher)

    logger.debug(
        "auth_services_built",
        integrations=[info["key"] for info in catalog.list_integrations()],
        encryption_key=settings.get_masked_key("encryption_key"),
    )

    return AuthServices(
        catalog=catalog,
        integration_store=integration_store,
        connection_store=connection_store,
        protocol=protocol,
        discovery=discovery,
        registrar=registrar,
        authorization=authorization,
        exchanger=exchanger,
        refresher=refresher,
        tokens=tokens,
    )
