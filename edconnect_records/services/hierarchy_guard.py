"""
Integrity checks for parent-linked records (categories, nested topics).

Parent references must form a forest: no record may be its own parent or its
own ancestor, and a record with children cannot be deleted. The guard only
reads; callers perform the write once the check has passed.
"""

from __future__ import annotations

from typing import Iterator, List, Optional

from edconnect_records.domain.models import PARENT_FIELD, HierarchicalRecord, Record
from edconnect_records.errors import (
    CycleError,
    HasChildrenError,
    MissingParentError,
    NotFoundError,
    SelfParentError,
)
from edconnect_records.infrastructure.store import RecordStore, Where
from edconnect_records.utils.logging import get_logger

log = get_logger(__name__)


class HierarchyGuard:
    """
    Validate parent assignments and deletions for one parent field.
    """

    def __init__(self, store: RecordStore, parent_field: str = PARENT_FIELD) -> None:
        self._store = store
        self._parent_field = parent_field

    @property
    def parent_field(self) -> str:
        return self._parent_field

    def validate_parent_assignment(
        self,
        collection: str,
        node_id: Optional[str],
        proposed_parent_id: Optional[str],
    ) -> None:
        """
        Check that making ``proposed_parent_id`` the parent of ``node_id`` keeps
        the hierarchy acyclic.

        ``node_id`` is None for a record that has not been created yet; only
        the parent's existence is checked then.

        Raises
        ------
        SelfParentError
            If the node is proposed as its own parent.
        MissingParentError
            If the proposed parent does not exist (a CycleError and a
            NotFoundError).
        CycleError
            If the node is an ancestor of the proposed parent, or the existing
            chain is already cyclic.
        """
        if proposed_parent_id is None:
            return
        if node_id is not None and proposed_parent_id == node_id:
            raise SelfParentError(f"Record '{node_id}' cannot be its own parent")

        parent = self._store.find_unique(collection, proposed_parent_id)
        if parent is None:
            raise MissingParentError(
                f"Parent '{proposed_parent_id}' does not exist in '{collection}'"
            )
        if node_id is None:
            return

        for ancestor in self._walk(collection, self._node(parent)):
            if ancestor.id == node_id:
                raise CycleError(
                    f"Assigning parent '{proposed_parent_id}' to '{node_id}' would create a cycle"
                )

    def ensure_deletable(self, collection: str, node_id: str) -> None:
        """
        Raise HasChildrenError if any record still points at ``node_id``.
        """
        children = self._store.count(collection, Where(equals={self._parent_field: node_id}))
        if children:
            raise HasChildrenError(
                f"Record '{node_id}' has {children} child record(s); "
                "move or delete them first",
                child_count=children,
            )

    def ancestors(self, collection: str, node_id: str) -> List[HierarchicalRecord]:
        """
        Return the ancestors of ``node_id``, nearest first.
        """
        record = self._store.find_unique(collection, node_id)
        if record is None:
            raise NotFoundError(f"Record '{node_id}' not found in '{collection}'")
        node = self._node(record)
        if node.parent_id is None:
            return []
        parent = self._store.find_unique(collection, node.parent_id)
        if parent is None:
            return []
        chain = []
        for ancestor in self._walk(collection, self._node(parent)):
            if ancestor.id == node_id:
                raise CycleError(f"Record '{node_id}' is part of a parent cycle")
            chain.append(ancestor)
        return chain

    def _node(self, record: Record) -> HierarchicalRecord:
        return HierarchicalRecord.from_record(record, parent_field=self._parent_field)

    def _walk(
        self, collection: str, start: HierarchicalRecord
    ) -> Iterator[HierarchicalRecord]:
        """
        Yield ``start`` and then each of its ancestors up to a root.

        The walk is capped at the collection size; exceeding it means the
        stored links already contain a cycle.
        """
        limit = self._store.count(collection)
        current: Optional[HierarchicalRecord] = start
        steps = 0
        while current is not None:
            if steps >= limit:
                raise CycleError(
                    f"Parent chain in '{collection}' exceeds {limit} steps; "
                    "existing data contains a cycle"
                )
            yield current
            steps += 1
            if current.parent_id is None:
                return
            parent = self._store.find_unique(collection, current.parent_id)
            if parent is None:
                log.warning(
                    "Dangling parent reference",
                    extra={
                        "collection": collection,
                        "record_id": current.id,
                        "parent_id": current.parent_id,
                    },
                )
                return
            current = self._node(parent)


__all__ = ["HierarchyGuard"]
