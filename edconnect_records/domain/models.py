"""
Domain models for EdConnect Records.

Records are generic documents belonging to a named collection. QuerySpec,
PageResult and BulkOperationResult describe a single request and are never
persisted.
"""
from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from edconnect_records.errors import ValidationError

PARENT_FIELD = "parent_id"


class Record(BaseModel):
    """
    A single persisted entity in a collection.
    """

    id: str = Field(..., description="Unique identifier within the collection.")
    collection: str = Field(..., description="Name of the owning collection.")
    created_at: datetime = Field(..., description="Creation timestamp (UTC), default sort key.")
    data: Dict[str, Any] = Field(default_factory=dict, description="Field name to value.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }

    def get(self, field: str, default: Any = None) -> Any:
        """Resolve a field by name; ``id`` and ``created_at`` map to the columns."""
        if field == "id":
            return self.id
        if field == "created_at":
            return self.created_at
        return self.data.get(field, default)


class HierarchicalRecord(Record):
    """
    A record linked to an optional parent in the same collection.

    ``parent_id`` is read from ``parent_field`` of the stored data when built
    with ``from_record``.
    """

    parent_id: Optional[str] = None

    @classmethod
    def from_record(
        cls, record: Record, parent_field: str = PARENT_FIELD
    ) -> "HierarchicalRecord":
        parent = record.get(parent_field)
        if parent is not None and not isinstance(parent, str):
            parent = str(parent)
        return cls(**record.model_dump(exclude={"parent_id"}), parent_id=parent)


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class QuerySpec(BaseModel):
    """
    A paginated, filtered listing request.

    ``page`` below 1 is treated as the first page. ``page_size`` left as None
    is filled in by PaginatedQuery from settings.
    """

    page: int = 1
    page_size: Optional[int] = Field(None, ge=1)
    sort_field: str = "created_at"
    sort_direction: SortDirection = SortDirection.DESC
    search: Optional[str] = None
    searchable_fields: List[str] = Field(default_factory=list)
    filters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("page", mode="before")
    @classmethod
    def _normalize_page(cls, value: Any) -> Any:
        if value is None:
            return 1
        return value

    @field_validator("page")
    @classmethod
    def _clamp_page(cls, value: int) -> int:
        return value if value >= 1 else 1

    @field_validator("search")
    @classmethod
    def _blank_search_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value

    @field_validator("sort_field")
    @classmethod
    def _default_sort_field(cls, value: str) -> str:
        return value or "created_at"

    @classmethod
    def parse(cls, params: Mapping[str, Any]) -> "QuerySpec":
        """
        Build a QuerySpec from loosely typed input (query strings, CLI args).

        Raises the package ValidationError instead of pydantic's.
        """
        try:
            return cls.model_validate(dict(params))
        except PydanticValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'query'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ValidationError(f"Invalid query: {details}") from exc


class PageResult(BaseModel):
    """One page of a listing plus the numbers needed to render a pager."""

    items: List[Record]
    total: int
    page: int
    page_size: int
    page_count: int
    has_more: bool

    @classmethod
    def build(cls, items: List[Record], total: int, page: int, page_size: int) -> "PageResult":
        page_count = math.ceil(total / page_size) if total else 0
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            page_count=page_count,
            has_more=page < page_count,
        )


class BulkItemError(BaseModel):
    index: int = Field(..., description="Position of the item in the input batch.")
    item: Any = Field(..., description="The offending input item (or id for deletes).")
    error: str = Field(..., description="Human-readable failure message.")
    code: str = Field(..., description="Error kind, e.g. not_found or validation_error.")


class BulkOperationResult(BaseModel):
    """
    Outcome of a best-effort batch mutation.
    """

    success: int = 0
    failed: int = 0
    errors: List[BulkItemError] = Field(default_factory=list)

    def record_success(self) -> None:
        self.success += 1

    def record_failure(self, index: int, item: Any, error: str, code: str) -> None:
        self.failed += 1
        self.errors.append(BulkItemError(index=index, item=item, error=error, code=code))


__all__ = [
    "PARENT_FIELD",
    "Record",
    "HierarchicalRecord",
    "SortDirection",
    "QuerySpec",
    "PageResult",
    "BulkItemError",
    "BulkOperationResult",
]
