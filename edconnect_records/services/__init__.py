"""
Services package for EdConnect Records.

Re-exports the request-scoped utilities so callers can import from
`edconnect_records.services` directly. Every service takes its store through
the constructor.
"""

from edconnect_records.services.bulk_mutator import BulkMutator, Validator
from edconnect_records.services.categories import CategoryService
from edconnect_records.services.health import HealthReport, check_health
from edconnect_records.services.hierarchy_guard import HierarchyGuard
from edconnect_records.services.paginated_query import PaginatedQuery

__all__ = [
    "BulkMutator",
    "CategoryService",
    "HealthReport",
    "HierarchyGuard",
    "PaginatedQuery",
    "Validator",
    "check_health",
]
