"""
Best-effort batch create, update and delete.

Items are applied one at a time in input order. There is no cross-item
transaction: a failure is recorded against its item and the batch moves on.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from edconnect_records.domain.models import BulkOperationResult
from edconnect_records.errors import RecordsError, ValidationError, wrap_error
from edconnect_records.infrastructure.store import RecordStore, check_patch
from edconnect_records.utils.logging import get_logger

log = get_logger(__name__)

# A callable that raises on bad input, or a pydantic model class to validate
# against. A callable may return cleaned data (a mapping), None to keep the
# input as is, or a bool: True accepts the item and False rejects it.
Validator = Union[
    Callable[[Mapping[str, Any]], Union[Mapping[str, Any], bool, None]], Type[BaseModel]
]


def _pydantic_message(exc: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'item'}: {err['msg']}" for err in exc.errors()
    )


def run_validator(
    validator: Optional[Validator], data: Any, partial: bool = False
) -> Dict[str, Any]:
    """
    Validate ``data`` and return the mapping that should be written.

    Any exception raised by a callable validator is reported as a
    ValidationError. ``partial`` keeps only the fields present in the input
    when validating against a pydantic model (update patches).
    """
    if not isinstance(data, Mapping):
        raise ValidationError(f"Expected a mapping, got {type(data).__name__}")
    if validator is None:
        return dict(data)

    if isinstance(validator, type) and issubclass(validator, BaseModel):
        try:
            model = validator.model_validate(dict(data))
        except PydanticValidationError as exc:
            raise ValidationError(_pydantic_message(exc)) from exc
        return model.model_dump(exclude_unset=partial)

    try:
        cleaned = validator(data)
    except ValidationError:
        raise
    except PydanticValidationError as exc:
        raise ValidationError(_pydantic_message(exc)) from exc
    except Exception as exc:
        raise ValidationError(str(exc) or type(exc).__name__) from exc
    if cleaned is None or cleaned is True:
        return dict(data)
    if cleaned is False:
        raise ValidationError("Item rejected by validator")
    if not isinstance(cleaned, Mapping):
        raise ValidationError(
            f"Validator must return a mapping, a bool or None, got {type(cleaned).__name__}"
        )
    return dict(cleaned)


def split_update_item(item: Any) -> Tuple[str, Mapping[str, Any]]:
    """Accept ``(id, patch)`` pairs or ``{"id": ..., "data": {...}}`` mappings."""
    if isinstance(item, Mapping):
        record_id, patch = item.get("id"), item.get("data")
    elif isinstance(item, (tuple, list)) and len(item) == 2:
        record_id, patch = item
    else:
        raise ValidationError("Update items must be (id, patch) pairs or {'id', 'data'} mappings")
    if not isinstance(record_id, str) or not record_id:
        raise ValidationError("Update item is missing a record id")
    if not isinstance(patch, Mapping):
        raise ValidationError(f"Patch for '{record_id}' must be a mapping")
    return record_id, patch


class BulkMutator:
    """
    Apply batches of writes against one store, isolating per-item failures.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def bulk_create(
        self,
        collection: str,
        items: Iterable[Any],
        validator: Optional[Validator] = None,
    ) -> BulkOperationResult:
        def apply(item: Any) -> None:
            self._store.create(collection, run_validator(validator, item))

        return self._run("create", collection, items, apply)

    def bulk_update(
        self,
        collection: str,
        items: Iterable[Any],
        validator: Optional[Validator] = None,
    ) -> BulkOperationResult:
        def apply(item: Any) -> None:
            record_id, patch = split_update_item(item)
            changes = run_validator(validator, check_patch(patch), partial=True)
            self._store.update(collection, record_id, changes)

        return self._run("update", collection, items, apply)

    def bulk_delete(self, collection: str, ids: Iterable[str]) -> BulkOperationResult:
        def apply(record_id: Any) -> None:
            if not isinstance(record_id, str) or not record_id:
                raise ValidationError(f"Invalid record id {record_id!r}")
            self._store.delete(collection, record_id)

        return self._run("delete", collection, ids, apply)

    def _run(
        self,
        operation: str,
        collection: str,
        items: Iterable[Any],
        apply: Callable[[Any], None],
    ) -> BulkOperationResult:
        result = BulkOperationResult()
        for index, item in enumerate(items):
            try:
                apply(item)
            except Exception as exc:  # noqa: BLE001 - every item failure is recorded, not raised
                error = wrap_error(exc)
                if not isinstance(exc, RecordsError):
                    log.exception(
                        "Unexpected bulk item failure",
                        extra={"collection": collection, "operation": operation, "index": index},
                    )
                result.record_failure(index=index, item=item, error=error.message, code=error.code)
            else:
                result.record_success()

        log.info(
            f"[BULK {operation.upper()}] {collection}",
            extra={
                "collection": collection,
                "operation": operation,
                "success": result.success,
                "failed": result.failed,
            },
        )
        return result


__all__ = ["BulkMutator", "Validator", "run_validator", "split_update_item"]
