"""
Database connection factory utilities for EdConnect Records.

Provides PostgreSQL connection pools with explicit lifecycle management. A
PoolManager is constructed by the application (or a test) and handed to the
stores that need it; there is no process-wide instance.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import atexit
import threading
from contextlib import contextmanager
from typing import Generator, Optional

import psycopg
from psycopg import Connection, sql
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from edconnect_records.config import Settings, get_settings
from edconnect_records.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def apply_statement_timeout(cur: psycopg.Cursor, timeout_ms: int) -> None:
    """
    Bound the current transaction's statements to ``timeout_ms``.

    A non-positive value leaves the server default in place.
    """
    if timeout_ms <= 0:
        return
    cur.execute(
        sql.SQL("SET LOCAL statement_timeout = {}").format(sql.Literal(int(timeout_ms)))
    )


class PoolManager:
    """
    Owner of the synchronous connection pool for one database.

    The pool is opened lazily on first use. ``close_all`` is registered with
    atexit and is safe to call more than once.
    """

    def __init__(
        self,
        dsn: Optional[str] = None,
        min_size: Optional[int] = None,
        max_size: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self._dsn = dsn or build_dsn(settings)
        self._min_size = min_size if min_size is not None else settings.db_pool_min_size
        self._max_size = max_size if max_size is not None else settings.db_pool_max_size
        self._sync_pool: Optional[ConnectionPool] = None
        self._lock = threading.Lock()
        atexit.register(self.close_all)

    @property
    def dsn(self) -> str:
        return self._dsn

    def get_sync_pool(self) -> ConnectionPool:
        """
        Get or create the synchronous connection pool.

        Returns
        -------
        ConnectionPool
            The managed sync pool instance.
        """
        with self._lock:
            if self._sync_pool is None:
                self._sync_pool = ConnectionPool(
                    conninfo=self._dsn,
                    min_size=self._min_size,
                    max_size=self._max_size,
                    open=True,
                )
                log.debug(
                    "Connection pool opened",
                    extra={"min_size": self._min_size, "max_size": self._max_size},
                )
            return self._sync_pool

    @contextmanager
    def sync_connection(self) -> Generator[Connection, None, None]:
        """
        Context manager for obtaining a sync connection from the pool.

        The transaction commits when the block exits cleanly and rolls back
        otherwise.

        Example
        -------
            manager = PoolManager()
            with manager.sync_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
        """
        pool = self.get_sync_pool()
        with pool.connection() as conn:
            yield conn

    def close_all(self) -> None:
        """
        Close the managed pool and release resources.

        This is called automatically on exit via atexit hook.
        """
        with self._lock:
            if self._sync_pool is not None:
                pool, self._sync_pool = self._sync_pool, None
                try:
                    pool.close()
                except Exception as exc:  # noqa: BLE001 - shutdown must not raise
                    log.warning("Failed to close connection pool", extra={"error": str(exc)})


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Use this for simple, one-off operations (schema setup, health checks).
    Prefer the pool for repeated use.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn())


__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "build_dsn",
    "get_sync_connection",
]
