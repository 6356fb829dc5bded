"""Record store interface.

Stores expose exactly two operations, ``get`` and ``put``. ``put`` is an
upsert guarded by an optional optimistic-concurrency version:

- ``expected_version=None``: unconditional upsert
- ``expected_version=0``: the record must not exist yet
- ``expected_version=n``: the stored record must still be at version n

Every successful ``put`` bumps the stored version.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

import structlog

from integration_auth.core.errors import ConcurrencyConflictError
from integration_auth.models.integration import IntegrationRecord

logger = structlog.get_logger()

K = TypeVar("K")
R = TypeVar("R")

# Read-modify-write attempts before giving up on a contended record
MAX_UPDATE_ATTEMPTS = 5


class RecordStore(ABC, Generic[K, R]):
    """Key-addressable persistent store."""

    @abstractmethod
    async def get(self, key: K) -> R | None:
        """Get the record stored under key, or None."""
        ...

    @abstractmethod
    async def put(self, key: K, record: R, expected_version: int | None = None) -> R:
        """Store record under key and return it with its new version.

        Raises:
            ConcurrencyConflictError: If expected_version no longer matches
        """
        ...


IntegrationStore = RecordStore[str, IntegrationRecord]


async def update_integration(
    store: IntegrationStore,
    name: str,
    **changes: Any,
) -> IntegrationRecord:
    """Apply field changes to an integration record, creating it if absent.

    Re-reads and retries on version conflicts so that concurrent writers of
    different fields (discovery cache, client registration) never overwrite
    each other.

    Raises:
        ConcurrencyConflictError: If the record stays contended
    """
    for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
        current = await store.get(name) or IntegrationRecord(name=name)
        updated = current.model_copy(update=changes)
        try:
            return await store.put(name, updated, expected_version=current.version)
        except ConcurrencyConflictError:
            logger.debug(
                "integration_update_conflict",
                integration=name,
                attempt=attempt,
            )
    raise ConcurrencyConflictError(
        f"Integration record {name} kept changing during update"
    )


async def ensure_integration(store: IntegrationStore, name: str) -> IntegrationRecord:
    """Get an integration record, creating an empty one on first use."""
    existing = await store.get(name)
    if existing is not None:
        return existing
    try:
        return await store.put(name, IntegrationRecord(name=name), expected_version=0)
    except ConcurrencyConflictError:
        # Created concurrently
        created = await store.get(name)
        if created is None:
            raise
        return created
