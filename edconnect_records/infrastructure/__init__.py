"""
Infrastructure package for EdConnect Records.

Holds the persistence contract and its backends (in-memory, PostgreSQL)
plus connection pooling. Keep this layer focused on I/O and resource
management, decoupled from service logic.
"""

from edconnect_records.infrastructure.db_factory import (
    PoolManager,
    build_dsn,
    get_sync_connection,
)
from edconnect_records.infrastructure.postgres_store import PostgresStore
from edconnect_records.infrastructure.store import InMemoryStore, OrderBy, RecordStore, Where

__all__ = [
    "InMemoryStore",
    "OrderBy",
    "PoolManager",
    "PostgresStore",
    "RecordStore",
    "Where",
    "build_dsn",
    "get_sync_connection",
]
