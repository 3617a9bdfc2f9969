"""
Persistence collaborator contract and the in-memory implementation.

Services depend only on the RecordStore protocol and receive a store through
their constructor, so the same PaginatedQuery or BulkMutator runs against the
in-memory store in tests and PostgresStore in production.
"""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)

from edconnect_records.domain.models import Record, SortDirection
from edconnect_records.errors import DuplicateError, NotFoundError, ValidationError

RESERVED_FIELDS = frozenset({"id", "created_at"})
SEARCH_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class Where:
    """
    Eligibility clause: exact-equality filters AND an optional text search.

    The search is a case-insensitive substring match OR-ed across
    ``search_fields``; it only applies when both a term and fields are given.
    """

    equals: Mapping[str, Any] = field(default_factory=dict)
    search: Optional[str] = None
    search_fields: Tuple[str, ...] = ()

    @property
    def has_search(self) -> bool:
        return bool(self.search) and bool(self.search_fields)

    def matches(self, record: Record) -> bool:
        for key, expected in self.equals.items():
            if not json_equal(record.get(key), expected):
                return False
        if not self.has_search:
            return True
        needle = self.search.lower()  # type: ignore[union-attr]
        for name in self.search_fields:
            text = search_text(record.get(name))
            if text is not None and needle in text.lower():
                return True
        return False


def json_equal(left: Any, right: Any) -> bool:
    """
    Equality as JSON sees it: ``1 == 1.0`` but ``True != 1`` and ``"1" != 1``.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        return left.keys() == right.keys() and all(
            json_equal(value, right[key]) for key, value in left.items()
        )
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(json_equal(a, b) for a, b in zip(left, right))
    return type(left) is type(right) and left == right


def search_text(value: Any) -> Optional[str]:
    """
    Text a value is searched as. Timestamps render as UTC
    ``YYYY-MM-DD HH:MM:SS``; non-string JSON values as their JSON text.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).strftime(SEARCH_TIMESTAMP_FORMAT)
    return json.dumps(value, default=str)


@dataclass(frozen=True)
class OrderBy:
    field: str = "created_at"
    direction: SortDirection = SortDirection.DESC

    @property
    def descending(self) -> bool:
        return self.direction == SortDirection.DESC


@runtime_checkable
class RecordStore(Protocol):
    """
    Capability interface every persistence backend provides.

    All methods except ``has_collection`` and ``ping`` raise NotFoundError
    when the collection does not exist.
    """

    def has_collection(self, collection: str) -> bool:
        ...

    def count(self, collection: str, where: Optional[Where] = None) -> int:
        ...

    def find_many(
        self,
        collection: str,
        where: Optional[Where] = None,
        skip: int = 0,
        take: Optional[int] = None,
        order_by: Optional[OrderBy] = None,
    ) -> List[Record]:
        ...

    def find_unique(self, collection: str, record_id: str) -> Optional[Record]:
        ...

    def create(self, collection: str, data: Mapping[str, Any]) -> Record:
        ...

    def update(self, collection: str, record_id: str, patch: Mapping[str, Any]) -> Record:
        ...

    def delete(self, collection: str, record_id: str) -> None:
        ...

    def ping(self) -> None:
        ...


def split_record_id(data: Mapping[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """Pop a caller-supplied ``id`` from ``data`` or generate one."""
    payload = dict(data)
    record_id = payload.pop("id", None)
    if "created_at" in payload:
        raise ValidationError("'created_at' is assigned by the store and cannot be set")
    if record_id is None:
        return uuid.uuid4().hex, payload
    if not isinstance(record_id, str) or not record_id:
        raise ValidationError("'id' must be a non-empty string")
    return record_id, payload


def check_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    reserved = RESERVED_FIELDS.intersection(patch)
    if reserved:
        raise ValidationError(f"Cannot update reserved field(s): {', '.join(sorted(reserved))}")
    return dict(patch)


def _sort_key(value: Any) -> Tuple[bool, int, Any]:
    # Nulls after values ascending, before them descending (PostgreSQL defaults).
    # Other values rank by JSON type as jsonb does: string < number < boolean
    # < array < object.
    if value is None:
        return (True, 0, 0)
    if isinstance(value, str):
        return (False, 0, value)
    if isinstance(value, bool):
        return (False, 2, value)
    if isinstance(value, (int, float)):
        return (False, 1, value)
    if isinstance(value, (list, tuple)):
        return (False, 3, json.dumps(value, sort_keys=True, default=str))
    if isinstance(value, Mapping):
        return (False, 4, json.dumps(value, sort_keys=True, default=str))
    return (False, 5, value)


class InMemoryStore:
    """
    Dict-backed RecordStore.

    ``created_at`` comes from ``clock`` and is bumped by one microsecond when
    the clock does not advance, so default ordering is total.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._collections: Dict[str, Dict[str, Record]] = {}
        self._unique_fields: Dict[str, Tuple[str, ...]] = {}
        self._last_created: Optional[datetime] = None
        self._lock = threading.RLock()

    def create_collection(self, collection: str, unique_fields: Iterable[str] = ()) -> None:
        with self._lock:
            self._collections.setdefault(collection, {})
            self._unique_fields[collection] = tuple(unique_fields)

    def has_collection(self, collection: str) -> bool:
        return collection in self._collections

    def _rows(self, collection: str) -> Dict[str, Record]:
        try:
            return self._collections[collection]
        except KeyError:
            raise NotFoundError(f"Collection '{collection}' does not exist") from None

    def _next_timestamp(self) -> datetime:
        now = self._clock()
        if self._last_created is not None and now <= self._last_created:
            now = self._last_created + timedelta(microseconds=1)
        self._last_created = now
        return now

    def _check_unique(
        self, collection: str, data: Mapping[str, Any], exclude_id: Optional[str] = None
    ) -> None:
        for name in self._unique_fields.get(collection, ()):
            value = data.get(name)
            if value is None:
                continue
            for other in self._collections[collection].values():
                if other.id != exclude_id and json_equal(other.data.get(name), value):
                    raise DuplicateError(
                        f"A record in '{collection}' already has {name}={value!r}"
                    )

    def count(self, collection: str, where: Optional[Where] = None) -> int:
        with self._lock:
            rows = self._rows(collection)
            if where is None:
                return len(rows)
            return sum(1 for record in rows.values() if where.matches(record))

    def find_many(
        self,
        collection: str,
        where: Optional[Where] = None,
        skip: int = 0,
        take: Optional[int] = None,
        order_by: Optional[OrderBy] = None,
    ) -> List[Record]:
        order = order_by or OrderBy()
        with self._lock:
            rows = self._rows(collection)
            eligible = [r for r in rows.values() if where is None or where.matches(r)]
        eligible.sort(
            key=lambda r: (_sort_key(r.get(order.field)), r.id),
            reverse=order.descending,
        )
        end = None if take is None else skip + take
        return eligible[skip:end]

    def find_unique(self, collection: str, record_id: str) -> Optional[Record]:
        with self._lock:
            return self._rows(collection).get(record_id)

    def create(self, collection: str, data: Mapping[str, Any]) -> Record:
        with self._lock:
            rows = self._rows(collection)
            record_id, payload = split_record_id(data)
            if record_id in rows:
                raise DuplicateError(f"A record with id '{record_id}' already exists in '{collection}'")
            self._check_unique(collection, payload)
            record = Record(
                id=record_id,
                collection=collection,
                created_at=self._next_timestamp(),
                data=payload,
            )
            rows[record_id] = record
            return record

    def update(self, collection: str, record_id: str, patch: Mapping[str, Any]) -> Record:
        with self._lock:
            rows = self._rows(collection)
            current = rows.get(record_id)
            if current is None:
                raise NotFoundError(f"Record '{record_id}' not found in '{collection}'")
            merged = {**current.data, **check_patch(patch)}
            self._check_unique(collection, merged, exclude_id=record_id)
            record = current.model_copy(update={"data": merged})
            rows[record_id] = record
            return record

    def delete(self, collection: str, record_id: str) -> None:
        with self._lock:
            rows = self._rows(collection)
            if rows.pop(record_id, None) is None:
                raise NotFoundError(f"Record '{record_id}' not found in '{collection}'")

    def ping(self) -> None:
        return None


__all__ = [
    "RESERVED_FIELDS",
    "Where",
    "OrderBy",
    "RecordStore",
    "InMemoryStore",
    "split_record_id",
    "check_patch",
    "json_equal",
    "search_text",
]
