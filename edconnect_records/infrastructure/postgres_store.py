"""
PostgreSQL-backed RecordStore.

Each collection is a table holding one JSONB document per record:

    id          TEXT PRIMARY KEY
    created_at  TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
    data        JSONB NOT NULL DEFAULT '{}'

Identifiers are always composed with psycopg.sql; field names and values
travel as query parameters.
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from typing import Any, Generator, Iterable, List, Mapping, Optional, Tuple

import psycopg
from psycopg import sql
from psycopg.errors import UndefinedTable, UniqueViolation
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import PoolTimeout

from edconnect_records.config import get_settings
from edconnect_records.domain.models import Record
from edconnect_records.errors import (
    DatabaseConnectionError,
    DuplicateError,
    NotFoundError,
    RecordsError,
    UnknownError,
    ValidationError,
)
from edconnect_records.infrastructure.db_factory import (
    PoolManager,
    apply_statement_timeout,
    get_sync_connection,
)
from edconnect_records.infrastructure.store import OrderBy, Where, check_patch, split_record_id
from edconnect_records.utils.logging import get_logger

log = get_logger(__name__)

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")
_COLUMNS = frozenset({"id", "created_at"})
_RETURNING = sql.SQL("RETURNING id, created_at, data")
# to_char rendering of SEARCH_TIMESTAMP_FORMAT
_SEARCH_TIMESTAMP_PATTERN = "YYYY-MM-DD HH24:MI:SS"


def validate_identifier(name: str, kind: str = "collection") -> str:
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValidationError(
            f"Invalid {kind} name {name!r}: use lowercase letters, digits and underscores"
        )
    return name


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _field_value(name: str) -> Tuple[sql.Composable, List[Any]]:
    """SQL expression (as jsonb, JSON null folded to SQL NULL) for a field."""
    if name in _COLUMNS:
        return sql.Identifier(name), []
    return sql.SQL("NULLIF(data -> %s::text, 'null'::jsonb)"), [name]


def compile_where(where: Optional[Where]) -> Tuple[sql.Composable, List[Any]]:
    """
    Translate a Where clause into a SQL condition and its parameters.
    """
    if where is None:
        return sql.SQL("TRUE"), []

    clauses: List[sql.Composable] = []
    params: List[Any] = []
    for key, value in where.equals.items():
        if key in _COLUMNS:
            if value is None:
                clauses.append(sql.SQL("FALSE"))
                continue
            clauses.append(sql.SQL("{} = %s").format(sql.Identifier(key)))
            params.append(value)
        elif value is None:
            clauses.append(sql.SQL("NULLIF(data -> %s::text, 'null'::jsonb) IS NULL"))
            params.append(key)
        else:
            clauses.append(sql.SQL("data -> %s::text = %s"))
            params.extend([key, Jsonb(value)])

    if where.has_search:
        pattern = f"%{escape_like(where.search)}%"  # type: ignore[arg-type]
        options: List[sql.Composable] = []
        for name in where.search_fields:
            if name == "created_at":
                options.append(
                    sql.SQL("to_char(created_at AT TIME ZONE 'UTC', %s) ILIKE %s")
                )
                params.extend([_SEARCH_TIMESTAMP_PATTERN, pattern])
            elif name == "id":
                options.append(sql.SQL("id ILIKE %s"))
                params.append(pattern)
            else:
                options.append(sql.SQL("data ->> %s::text ILIKE %s"))
                params.extend([name, pattern])
        clauses.append(sql.SQL("({})").format(sql.SQL(" OR ").join(options)))

    if not clauses:
        return sql.SQL("TRUE"), []
    return sql.SQL(" AND ").join(clauses), params


def compile_order(order_by: Optional[OrderBy]) -> Tuple[sql.Composable, List[Any]]:
    order = order_by or OrderBy()
    direction = sql.SQL("DESC" if order.descending else "ASC")
    expr, params = _field_value(order.field)
    if order.field == "id":
        return sql.SQL("id {}").format(direction), params
    return sql.SQL("{} {}, id {}").format(expr, direction, direction), params


@contextmanager
def _translate_errors(collection: Optional[str] = None) -> Generator[None, None, None]:
    """Re-raise driver and pool failures as package errors."""
    try:
        yield
    except RecordsError:
        raise
    except UndefinedTable as exc:
        raise NotFoundError(f"Collection '{collection}' does not exist") from exc
    except UniqueViolation as exc:
        detail = exc.diag.message_detail or str(exc)
        raise DuplicateError(f"Duplicate value in '{collection}': {detail}") from exc
    except (psycopg.OperationalError, psycopg.InterfaceError, PoolTimeout) as exc:
        raise DatabaseConnectionError(f"Database unavailable: {exc}") from exc
    except psycopg.Error as exc:
        raise UnknownError(str(exc) or type(exc).__name__) from exc


class PostgresStore:
    """
    RecordStore over PostgreSQL using a psycopg connection pool.
    """

    def __init__(
        self,
        pool_manager: PoolManager,
        statement_timeout_ms: Optional[int] = None,
    ) -> None:
        self._pool = pool_manager
        self._timeout_ms = (
            statement_timeout_ms
            if statement_timeout_ms is not None
            else get_settings().db_statement_timeout_ms
        )

    @contextmanager
    def _cursor(self, collection: Optional[str] = None) -> Generator[psycopg.Cursor, None, None]:
        with _translate_errors(collection):
            with self._pool.sync_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    apply_statement_timeout(cur, self._timeout_ms)
                    yield cur

    def _table(self, collection: str) -> sql.Identifier:
        return sql.Identifier(validate_identifier(collection))

    @staticmethod
    def _to_record(collection: str, row: Mapping[str, Any]) -> Record:
        return Record(
            id=row["id"],
            collection=collection,
            created_at=row["created_at"],
            data=row["data"] or {},
        )

    # Schema management

    def create_collection(self, collection: str, unique_fields: Iterable[str] = ()) -> None:
        table = self._table(collection)
        with self._cursor(collection) as cur:
            cur.execute(
                sql.SQL(
                    "CREATE TABLE IF NOT EXISTS {} ("
                    "id TEXT PRIMARY KEY, "
                    "created_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(), "
                    "data JSONB NOT NULL DEFAULT '{{}}'::jsonb)"
                ).format(table)
            )
            cur.execute(
                sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} (created_at)").format(
                    sql.Identifier(f"{collection}_created_at_idx"), table
                )
            )
            for name in unique_fields:
                validate_identifier(name, kind="field")
                cur.execute(
                    sql.SQL(
                        "CREATE UNIQUE INDEX IF NOT EXISTS {} ON {} "
                        "((NULLIF(data -> {}, 'null'::jsonb)))"
                    ).format(sql.Identifier(f"{collection}_{name}_key"), table, sql.Literal(name))
                )
        log.info(
            "Collection ready",
            extra={"collection": collection, "unique_fields": list(unique_fields)},
        )

    def drop_collection(self, collection: str) -> None:
        with self._cursor(collection) as cur:
            cur.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(self._table(collection)))

    # RecordStore

    def has_collection(self, collection: str) -> bool:
        if not isinstance(collection, str) or not _IDENTIFIER.match(collection):
            return False
        with self._cursor(collection) as cur:
            cur.execute("SELECT to_regclass(%s) IS NOT NULL AS present", (f"public.{collection}",))
            row = cur.fetchone()
        return bool(row and row["present"])

    def count(self, collection: str, where: Optional[Where] = None) -> int:
        condition, params = compile_where(where)
        query = sql.SQL("SELECT count(*) AS total FROM {} WHERE {}").format(
            self._table(collection), condition
        )
        with self._cursor(collection) as cur:
            cur.execute(query, params)
            row = cur.fetchone()
        return int(row["total"]) if row else 0

    def find_many(
        self,
        collection: str,
        where: Optional[Where] = None,
        skip: int = 0,
        take: Optional[int] = None,
        order_by: Optional[OrderBy] = None,
    ) -> List[Record]:
        condition, where_params = compile_where(where)
        ordering, order_params = compile_order(order_by)
        query = sql.SQL(
            "SELECT id, created_at, data FROM {} WHERE {} ORDER BY {} LIMIT %s OFFSET %s"
        ).format(self._table(collection), condition, ordering)
        params = [*where_params, *order_params, take, max(skip, 0)]
        with self._cursor(collection) as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [self._to_record(collection, row) for row in rows]

    def find_unique(self, collection: str, record_id: str) -> Optional[Record]:
        query = sql.SQL("SELECT id, created_at, data FROM {} WHERE id = %s").format(
            self._table(collection)
        )
        with self._cursor(collection) as cur:
            cur.execute(query, (record_id,))
            row = cur.fetchone()
        return self._to_record(collection, row) if row else None

    def create(self, collection: str, data: Mapping[str, Any]) -> Record:
        record_id, payload = split_record_id(data)
        query = sql.SQL("INSERT INTO {} (id, data) VALUES (%s, %s) {}").format(
            self._table(collection), _RETURNING
        )
        with self._cursor(collection) as cur:
            cur.execute(query, (record_id, Jsonb(payload)))
            row = cur.fetchone()
        return self._to_record(collection, row)

    def update(self, collection: str, record_id: str, patch: Mapping[str, Any]) -> Record:
        changes = check_patch(patch)
        query = sql.SQL("UPDATE {} SET data = data || %s WHERE id = %s {}").format(
            self._table(collection), _RETURNING
        )
        with self._cursor(collection) as cur:
            cur.execute(query, (Jsonb(changes), record_id))
            row = cur.fetchone()
        if row is None:
            raise NotFoundError(f"Record '{record_id}' not found in '{collection}'")
        return self._to_record(collection, row)

    def delete(self, collection: str, record_id: str) -> None:
        query = sql.SQL("DELETE FROM {} WHERE id = %s").format(self._table(collection))
        with self._cursor(collection) as cur:
            cur.execute(query, (record_id,))
            deleted = cur.rowcount
        if deleted == 0:
            raise NotFoundError(f"Record '{record_id}' not found in '{collection}'")

    def ping(self) -> None:
        """
        Round-trip ``SELECT 1`` over a dedicated connection.

        Transient connect failures are retried.
        """
        with _translate_errors():
            with get_sync_connection(self._pool.dsn) as conn:
                conn.execute("SELECT 1").fetchone()


__all__ = [
    "PostgresStore",
    "compile_order",
    "compile_where",
    "escape_like",
    "validate_identifier",
]
