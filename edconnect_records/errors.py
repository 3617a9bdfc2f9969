"""
Error taxonomy for EdConnect Records.

Every failure surfaced by the stores and services is a RecordsError carrying a
stable machine-readable ``code``. Route handlers map codes to HTTP statuses;
that mapping lives outside this package.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RecordsError(Exception):
    """Base class for all package errors."""

    code: str = "records_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class NotFoundError(RecordsError):
    """A referenced record or collection does not exist."""

    code = "not_found"


class DuplicateError(RecordsError):
    """A unique constraint (e.g. a category slug) would be violated."""

    code = "duplicate"


class ValidationError(RecordsError):
    """Input failed schema or shape constraints."""

    code = "validation_error"


class HierarchyError(RecordsError):
    """Base class for parent/child integrity violations."""

    code = "hierarchy_error"


class SelfParentError(HierarchyError):
    code = "self_parent"


class CycleError(HierarchyError):
    code = "cycle"


class MissingParentError(CycleError, NotFoundError):
    """
    The proposed parent does not exist.

    Subclasses both CycleError and NotFoundError so callers can handle it as
    either kind.
    """

    code = "parent_not_found"


class HasChildrenError(HierarchyError):
    code = "has_children"

    def __init__(self, message: str, child_count: int = 0) -> None:
        super().__init__(message)
        self.child_count = child_count


class DatabaseConnectionError(RecordsError):
    """The persistence backend is unreachable."""

    code = "connection_error"


class UnknownError(RecordsError):
    """Catch-all for unrecognised failures; keeps the original message."""

    code = "unknown_error"


def wrap_error(exc: BaseException, message: Optional[str] = None) -> RecordsError:
    """
    Return ``exc`` if it already belongs to the taxonomy, else an UnknownError.

    The original exception is attached as ``__cause__`` so tracebacks keep the
    root failure.
    """
    if isinstance(exc, RecordsError):
        return exc
    text = message or str(exc) or type(exc).__name__
    wrapped = UnknownError(text)
    wrapped.__cause__ = exc
    return wrapped


__all__ = [
    "RecordsError",
    "NotFoundError",
    "DuplicateError",
    "ValidationError",
    "HierarchyError",
    "SelfParentError",
    "CycleError",
    "MissingParentError",
    "HasChildrenError",
    "DatabaseConnectionError",
    "UnknownError",
    "wrap_error",
]
