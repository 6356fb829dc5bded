"""Persistence for integration and connection records."""

from integration_auth.store.base import (
    IntegrationStore,
    RecordStore,
    ensure_integration,
    update_integration,
)
from integration_auth.store.sql import SQLConnectionStore, SQLIntegrationStore, ensure_utc

__all__ = [
    "IntegrationStore",
    "RecordStore",
    "SQLConnectionStore",
    "SQLIntegrationStore",
    "ensure_integration",
    "ensure_utc",
    "update_integration",
]
