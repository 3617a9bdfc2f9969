"""
Paginated, filtered and searchable listings over a collection.
"""

from __future__ import annotations

from typing import Optional

from edconnect_records.config import get_settings
from edconnect_records.domain.models import PageResult, QuerySpec
from edconnect_records.errors import NotFoundError, wrap_error
from edconnect_records.infrastructure.store import OrderBy, RecordStore, Where
from edconnect_records.utils.logging import get_logger

log = get_logger(__name__)


def where_from_spec(spec: QuerySpec) -> Where:
    return Where(
        equals=dict(spec.filters),
        search=spec.search,
        search_fields=tuple(spec.searchable_fields),
    )


class PaginatedQuery:
    """
    Translate a QuerySpec into one bounded, deterministic page.

    Parameters
    ----------
    store : RecordStore
        Persistence collaborator to read from.
    default_page_size : int | None
        Page size used when the query leaves it unset. Defaults to
        ``Settings.default_page_size`` (10).
    """

    def __init__(self, store: RecordStore, default_page_size: Optional[int] = None) -> None:
        self._store = store
        self._default_page_size = default_page_size or get_settings().default_page_size

    def execute(self, collection: str, spec: Optional[QuerySpec] = None) -> PageResult:
        """
        Run the listing and return the requested page.

        Raises
        ------
        NotFoundError
            If the collection does not exist.
        """
        spec = spec or QuerySpec()
        page = spec.page
        page_size = spec.page_size or self._default_page_size
        skip = (page - 1) * page_size
        where = where_from_spec(spec)
        order_by = OrderBy(field=spec.sort_field, direction=spec.sort_direction)

        try:
            if not self._store.has_collection(collection):
                raise NotFoundError(f"Collection '{collection}' does not exist")
            total = self._store.count(collection, where)
            items = (
                self._store.find_many(
                    collection, where=where, skip=skip, take=page_size, order_by=order_by
                )
                if skip < total
                else []
            )
        except Exception as exc:
            wrapped = wrap_error(exc)
            if wrapped is exc:
                raise
            raise wrapped from exc

        log.debug(
            "Listing served",
            extra={"collection": collection, "page": page, "page_size": page_size, "total": total},
        )
        return PageResult.build(items=items, total=total, page=page, page_size=page_size)


__all__ = ["PaginatedQuery", "where_from_spec"]
