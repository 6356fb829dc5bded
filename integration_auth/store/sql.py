"""SQL record stores.

Each operation opens its own short-lived session, so every read reflects
the committed state and nothing is cached in process. Secret fields are
Fernet-encrypted on write and decrypted on read.
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from integration_auth.core.encryption import CredentialEncryption
from integration_auth.core.errors import ConcurrencyConflictError
from integration_auth.models.connection import ConnectionKey, ConnectionRecord, MCPConnection
from integration_auth.models.integration import IntegrationRecord, MCPIntegration, utc_now
from integration_auth.store.base import RecordStore

logger = structlog.get_logger()


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from databases without tz support."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class _SQLStore:
    """Shared optimistic upsert over one table."""

    _table: Any

    def __init__(self, session_maker: sessionmaker, encryption: CredentialEncryption) -> None:
        """Initialize store.

        Args:
            session_maker: Factory for async database sessions
            encryption: Encryption for secret columns
        """
        self._session_maker = session_maker
        self._encryption = encryption

    async def _upsert(
        self,
        session: AsyncSession,
        existing: Any | None,
        values: dict[str, Any],
        expected_version: int | None,
        key_repr: str,
    ) -> str:
        """Insert or conditionally update a row and return its id."""
        if existing is None:
            if expected_version:
                raise ConcurrencyConflictError(
                    f"{self._table.__tablename__} {key_repr} no longer exists",
                    expected_version=expected_version,
                )
            entity = self._table(**values)
            session.add(entity)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConcurrencyConflictError(
                    f"{self._table.__tablename__} {key_repr} was created concurrently",
                    expected_version=expected_version,
                ) from e
            return entity.id

        if expected_version == 0:
            raise ConcurrencyConflictError(
                f"{self._table.__tablename__} {key_repr} already exists",
                expected_version=0,
                actual_version=existing.version,
            )

        stmt = update(self._table).where(self._table.id == existing.id)
        if expected_version is not None:
            stmt = stmt.where(self._table.version == expected_version)
        stmt = stmt.values(
            **values,
            version=self._table.version + 1,
            updated_at=utc_now(),
        )
        result = await session.execute(stmt)
        await session.commit()

        if result.rowcount == 0:
            raise ConcurrencyConflictError(
                f"{self._table.__tablename__} {key_repr} was modified concurrently",
                expected_version=expected_version,
                actual_version=existing.version,
            )
        return existing.id

    async def _put_with_retry(
        self,
        load: Any,
        values: dict[str, Any],
        expected_version: int | None,
        key_repr: str,
    ) -> str:
        # An unconditional upsert that loses an insert race becomes an update
        attempts = 2 if expected_version is None else 1
        for attempt in range(attempts):
            async with self._session_maker() as session:
                existing = await load(session)
                try:
                    return await self._upsert(
                        session, existing, values, expected_version, key_repr
                    )
                except ConcurrencyConflictError:
                    if attempt + 1 >= attempts:
                        raise
        raise ConcurrencyConflictError(f"Failed to store {key_repr}")


class SQLIntegrationStore(_SQLStore, RecordStore[str, IntegrationRecord]):
    """Integration records keyed by integration name."""

    _table = MCPIntegration

    async def get(self, key: str) -> IntegrationRecord | None:
        async with self._session_maker() as session:
            entity = await self._load(session, key)
            if entity is None:
                return None
            return self._to_record(entity)

    async def put(
        self,
        key: str,
        record: IntegrationRecord,
        expected_version: int | None = None,
    ) -> IntegrationRecord:
        values = {
            "name": key,
            "registered_authorization_url": record.registered_authorization_url,
            "registered_token_url": record.registered_token_url,
            "registered_registration_url": record.registered_registration_url,
            "registered_server_url": record.registered_server_url,
            "oauth_client_id": record.oauth_client_id,
            "encrypted_client_secret": self._encryption.encrypt_optional(
                {"client_secret": record.oauth_client_secret}
            ),
        }

        async def load(session: AsyncSession) -> MCPIntegration | None:
            return await self._load(session, key)

        await self._put_with_retry(load, values, expected_version, key)
        stored = await self.get(key)
        if stored is None:
            raise ConcurrencyConflictError(f"mcp_integration {key} vanished after write")

        logger.debug("integration_record_stored", integration=key, version=stored.version)
        return stored

    @staticmethod
    async def _load(session: AsyncSession, name: str) -> MCPIntegration | None:
        result = await session.execute(
            select(MCPIntegration).where(MCPIntegration.name == name)
        )
        return result.scalar_one_or_none()

    def _to_record(self, entity: MCPIntegration) -> IntegrationRecord:
        secrets = self._encryption.decrypt_optional(entity.encrypted_client_secret)
        return IntegrationRecord(
            id=entity.id,
            name=entity.name,
            registered_authorization_url=entity.registered_authorization_url,
            registered_token_url=entity.registered_token_url,
            registered_registration_url=entity.registered_registration_url,
            registered_server_url=entity.registered_server_url,
            oauth_client_id=entity.oauth_client_id,
            oauth_client_secret=secrets.get("client_secret"),
            version=entity.version,
        )


class SQLConnectionStore(_SQLStore, RecordStore[ConnectionKey, ConnectionRecord]):
    """Connection records keyed by (email_account_id, integration_id)."""

    _table = MCPConnection

    async def get(self, key: ConnectionKey) -> ConnectionRecord | None:
        async with self._session_maker() as session:
            entity = await self._load(session, key)
            if entity is None:
                return None
            return self._to_record(entity)

    async def put(
        self,
        key: ConnectionKey,
        record: ConnectionRecord,
        expected_version: int | None = None,
    ) -> ConnectionRecord:
        values = {
            "name": record.name,
            "email_account_id": key.email_account_id,
            "integration_id": key.integration_id,
            "encrypted_data": self._encryption.encrypt_optional(
                {
                    "access_token": record.access_token,
                    "refresh_token": record.refresh_token,
                    "api_key": record.api_key,
                }
            ),
            "expires_at": record.expires_at,
            "is_active": record.is_active,
        }
        key_repr = f"{key.email_account_id}/{key.integration_id}"

        async def load(session: AsyncSession) -> MCPConnection | None:
            return await self._load(session, key)

        await self._put_with_retry(load, values, expected_version, key_repr)
        stored = await self.get(key)
        if stored is None:
            raise ConcurrencyConflictError(f"mcp_connection {key_repr} vanished after write")

        logger.debug(
            "connection_record_stored",
            integration=record.name,
            email_account_id=key.email_account_id,
            version=stored.version,
        )
        return stored

    @staticmethod
    async def _load(session: AsyncSession, key: ConnectionKey) -> MCPConnection | None:
        result = await session.execute(
            select(MCPConnection)
            .where(MCPConnection.email_account_id == key.email_account_id)
            .where(MCPConnection.integration_id == key.integration_id)
        )
        return result.scalar_one_or_none()

    def _to_record(self, entity: MCPConnection) -> ConnectionRecord:
        data = self._encryption.decrypt_optional(entity.encrypted_data)
        return ConnectionRecord(
            id=entity.id,
            name=entity.name,
            email_account_id=entity.email_account_id,
            integration_id=entity.integration_id,
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            api_key=data.get("api_key"),
            expires_at=ensure_utc(entity.expires_at),
            is_active=entity.is_active,
            version=entity.version,
        )
