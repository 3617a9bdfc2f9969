"""
EdConnect Records - data-access core for the EdPsych Connect platform.

This package provides the request-scoped utilities that route handlers use
on top of a pluggable persistence collaborator:

- Paginated, filtered and searchable listings
- Parent/child integrity checks for hierarchical records (no cycles, no
  self-parenting, no deleting parents with children)
- Best-effort bulk create, update and delete with per-item outcomes
- Blog category management and a database health probe

Backends: an in-memory store for tests and demos, and PostgreSQL (psycopg 3)
for deployments.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from edconnect_records.config import Settings, get_settings
from edconnect_records.domain.models import (
    BulkItemError,
    BulkOperationResult,
    HierarchicalRecord,
    PageResult,
    QuerySpec,
    Record,
    SortDirection,
)
from edconnect_records.errors import (
    CycleError,
    DatabaseConnectionError,
    DuplicateError,
    HasChildrenError,
    MissingParentError,
    NotFoundError,
    RecordsError,
    SelfParentError,
    UnknownError,
    ValidationError,
)
from edconnect_records.infrastructure.store import InMemoryStore, OrderBy, RecordStore, Where
from edconnect_records.services import (
    BulkMutator,
    CategoryService,
    HierarchyGuard,
    PaginatedQuery,
    check_health,
)
from edconnect_records.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "BulkItemError",
    "BulkOperationResult",
    "HierarchicalRecord",
    "PageResult",
    "QuerySpec",
    "Record",
    "SortDirection",
    # Errors
    "CycleError",
    "DatabaseConnectionError",
    "DuplicateError",
    "HasChildrenError",
    "MissingParentError",
    "NotFoundError",
    "RecordsError",
    "SelfParentError",
    "UnknownError",
    "ValidationError",
    # Persistence
    "InMemoryStore",
    "OrderBy",
    "RecordStore",
    "Where",
    # Services
    "BulkMutator",
    "CategoryService",
    "HierarchyGuard",
    "PaginatedQuery",
    "check_health",
    # Logging
    "configure_logging",
    "get_logger",
]
