"""
Error types for the document accessor.

This module defines the exceptions raised by DAO before any store call:
- DaoError: Base exception
- InvalidArgument: Malformed call inputs (type name, id, view name, options)
- InvalidDocument: Document failed schema validation
- AlreadyExists: create() called with a document carrying a revision
- IdentityMismatch: Local id does not match the document's own _id
- PreconditionFailed: update()/delete() called without a revision
- NotUnique: find_one() matched more than one row

Store-native failures (not found, conflict, transport) are defined in
couchdao.store.base and are never wrapped by these types.

Invariants:
    - All accessor errors inherit from DaoError
    - Every error carries a stable code for programmatic handling
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

if TYPE_CHECKING:
    from .validate import ValidationIssue


class DaoError(Exception):
    """Base exception for all accessor errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DAO_ERROR"
        self.details = details or {}


class InvalidArgument(DaoError, ValueError):
    """A call argument has the wrong type or is empty.

    Raised when:
    - Type name or database handle is unusable
    - Document id or view name is not a non-empty string
    - Options are not a mapping, or a required key is empty
    """

    def __init__(self, message: str, argument: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INVALID_ARGUMENT",
            details={"argument": argument},
        )
        self.argument = argument


class InvalidDocument(DaoError):
    """Document failed schema validation."""

    def __init__(
        self,
        message: str,
        errors: Optional[List[ValidationIssue]] = None,
    ) -> None:
        errors = list(errors or [])
        super().__init__(
            message,
            code="INVALID_DOCUMENT",
            details={"errors": [str(e) for e in errors]},
        )
        self.errors = errors


class AlreadyExists(DaoError):
    """create() was given a document that already carries a _rev."""

    def __init__(self, message: str, doc_id: Optional[str] = None) -> None:
        super().__init__(message, code="ALREADY_EXISTS", details={"doc_id": doc_id})
        self.doc_id = doc_id


class IdentityMismatch(DaoError):
    """The supplied local id does not qualify to the document's _id.

    Attributes:
        expected_id: Qualified id built from the call arguments
        actual_id: The document's own _id
    """

    def __init__(self, message: str, expected_id: str, actual_id: Any) -> None:
        super().__init__(
            message,
            code="IDENTITY_MISMATCH",
            details={"expected_id": expected_id, "actual_id": actual_id},
        )
        self.expected_id = expected_id
        self.actual_id = actual_id


class PreconditionFailed(DaoError):
    """A mutating call was given a document with no _rev."""

    def __init__(self, message: str, doc_id: Optional[str] = None) -> None:
        super().__init__(message, code="PRECONDITION_FAILED", details={"doc_id": doc_id})
        self.doc_id = doc_id


class NotUnique(DaoError):
    """find_one() matched more than one view row."""

    def __init__(self, message: str, view_name: str, key: Sequence[Any]) -> None:
        super().__init__(
            message,
            code="NOT_UNIQUE",
            details={"view_name": view_name, "key": list(key)},
        )
        self.view_name = view_name
        self.key = list(key)
