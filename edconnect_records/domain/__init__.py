"""
Domain package for EdConnect Records.

Exports the record and request/result models shared by stores and services.
Keep this package focused on data definitions and validation concerns.
"""

from edconnect_records.domain.models import (
    PARENT_FIELD,
    BulkItemError,
    BulkOperationResult,
    HierarchicalRecord,
    PageResult,
    QuerySpec,
    Record,
    SortDirection,
)

__all__ = [
    "PARENT_FIELD",
    "BulkItemError",
    "BulkOperationResult",
    "HierarchicalRecord",
    "PageResult",
    "QuerySpec",
    "Record",
    "SortDirection",
]
