"""
Blog category management.

Categories are hierarchical records with a unique slug derived from the
name. Parent changes go through HierarchyGuard before anything is written.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Set

from edconnect_records.domain.models import (
    PARENT_FIELD,
    HierarchicalRecord,
    PageResult,
    QuerySpec,
    Record,
)
from edconnect_records.errors import DuplicateError, NotFoundError, ValidationError
from edconnect_records.infrastructure.store import RecordStore, Where
from edconnect_records.services.hierarchy_guard import HierarchyGuard
from edconnect_records.services.paginated_query import PaginatedQuery
from edconnect_records.utils.logging import get_logger
from edconnect_records.utils.slug import slugify

log = get_logger(__name__)

DEFAULT_COLLECTION = "blog_categories"
SEARCHABLE_FIELDS = ("name", "description")


def _cycle_members(parents: Mapping[str, Optional[str]]) -> Set[str]:
    """Ids whose parent chain loops back on itself."""
    cyclic: Set[str] = set()
    settled: Set[str] = set()
    for start in parents:
        path: List[str] = []
        on_path: Set[str] = set()
        current = start
        while current is not None and current not in settled and current not in on_path:
            path.append(current)
            on_path.add(current)
            current = parents[current]
        if current is not None and current in on_path:
            cyclic.update(path[path.index(current):])
        settled.update(path)
    return cyclic


class CategoryService:
    def __init__(self, store: RecordStore, collection: str = DEFAULT_COLLECTION) -> None:
        self._store = store
        self._collection = collection
        self._guard = HierarchyGuard(store, parent_field=PARENT_FIELD)
        self._query = PaginatedQuery(store)

    @property
    def collection(self) -> str:
        return self._collection

    def _require(self, category_id: str) -> Record:
        record = self._store.find_unique(self._collection, category_id)
        if record is None:
            raise NotFoundError(f"Category '{category_id}' not found")
        return record

    def _slug_for(self, name: Any, exclude_id: Optional[str] = None) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Category name is required")
        slug = slugify(name)
        if not slug:
            raise ValidationError(f"Category name {name!r} does not produce a usable slug")
        for existing in self._store.find_many(self._collection, Where(equals={"slug": slug})):
            if existing.id != exclude_id:
                raise DuplicateError(f"A category with slug '{slug}' already exists")
        return slug

    def get(self, category_id: str) -> Record:
        return self._require(category_id)

    def create(
        self,
        name: str,
        description: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> Record:
        slug = self._slug_for(name)
        self._guard.validate_parent_assignment(self._collection, None, parent_id)
        record = self._store.create(
            self._collection,
            {
                "name": name.strip(),
                "slug": slug,
                "description": description,
                PARENT_FIELD: parent_id,
            },
        )
        log.info("Category created", extra={"category_id": record.id, "slug": slug})
        return record

    def update(self, category_id: str, patch: Mapping[str, Any]) -> Record:
        """
        Apply ``patch`` to a category.

        A ``parent_id`` change is validated first; a ``name`` change re-derives
        the slug. Clients cannot set the slug directly.
        """
        self._require(category_id)
        changes: Dict[str, Any] = {k: v for k, v in patch.items() if k != "slug"}
        if PARENT_FIELD in changes:
            self._guard.validate_parent_assignment(
                self._collection, category_id, changes[PARENT_FIELD]
            )
        if "name" in changes:
            changes["slug"] = self._slug_for(changes["name"], exclude_id=category_id)
            changes["name"] = changes["name"].strip()
        return self._store.update(self._collection, category_id, changes)

    def delete(self, category_id: str) -> None:
        self._require(category_id)
        self._guard.ensure_deletable(self._collection, category_id)
        self._store.delete(self._collection, category_id)
        log.info("Category deleted", extra={"category_id": category_id})

    def list(self, spec: Optional[QuerySpec] = None) -> PageResult:
        spec = spec or QuerySpec()
        if not spec.searchable_fields:
            spec = spec.model_copy(update={"searchable_fields": list(SEARCHABLE_FIELDS)})
        return self._query.execute(self._collection, spec)

    def breadcrumbs(self, category_id: str) -> List[Record]:
        """Root-first path down to (and including) the category."""
        node = self._require(category_id)
        return [*reversed(self._guard.ancestors(self._collection, category_id)), node]

    def tree(self) -> List[Dict[str, Any]]:
        """
        Nest every category under its parent, children sorted by name.

        Categories whose parent no longer exists are returned as roots, as are
        categories caught in a stored parent cycle (their parent link is cut).
        """
        records = [
            HierarchicalRecord.from_record(r, parent_field=PARENT_FIELD)
            for r in self._store.find_many(self._collection)
        ]
        nodes = {
            r.id: {"id": r.id, "name": r.get("name"), "slug": r.get("slug"), "children": []}
            for r in records
        }
        parents = {
            r.id: r.parent_id if r.parent_id in nodes and r.parent_id != r.id else None
            for r in records
        }
        cyclic = _cycle_members(parents)
        if cyclic:
            log.warning(
                "Category parent cycle detected",
                extra={"collection": self._collection, "category_ids": sorted(cyclic)},
            )

        roots: List[Dict[str, Any]] = []
        for record in records:
            parent_id = parents[record.id]
            if parent_id is None or record.id in cyclic:
                roots.append(nodes[record.id])
            else:
                nodes[parent_id]["children"].append(nodes[record.id])

        def by_name(node: Dict[str, Any]) -> str:
            return (node["name"] or "").lower()

        stack = list(roots)
        while stack:
            node = stack.pop()
            node["children"].sort(key=by_name)
            stack.extend(node["children"])
        roots.sort(key=by_name)
        return roots


__all__ = ["CategoryService", "DEFAULT_COLLECTION"]
