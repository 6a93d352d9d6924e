"""
Base protocol and errors for document store backends.

This module defines the DocumentStore protocol that DAO relies on, along with
the store-native errors every backend raises. Errors mirror CouchDB's HTTP
error model: a status code plus the server's {"error", "reason"} pair.

Invariants:
    - Missing or deleted documents raise NotFoundError (404)
    - A missing or stale _rev on write raises ConflictError (409)
    - Responses use CouchDB shapes ({"ok", "id", "rev"}, {"rows": [...]})

How to change safely:
    - Protocol changes require updating CouchStore and InMemoryDocumentStore
    - DAO treats these errors as opaque except for status_code 404
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Mapping,
    Optional,
    Protocol,
    runtime_checkable,
)

if TYPE_CHECKING:
    from ..config import StoreSettings

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Error reported by a document store.

    Attributes:
        status_code: HTTP-equivalent status code
        error: Short error name (e.g. "not_found", "conflict")
        reason: Server supplied explanation
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error = error or "unknown_error"
        self.reason = reason or message


class NotFoundError(StoreError):
    """Document, design document or database does not exist."""

    def __init__(self, message: str, reason: Optional[str] = None) -> None:
        super().__init__(message, status_code=404, error="not_found", reason=reason)


class ConflictError(StoreError):
    """Write rejected because the supplied revision is not the current one."""

    def __init__(self, message: str = "Document update conflict.") -> None:
        super().__init__(message, status_code=409, error="conflict", reason=message)


class StoreConnectionError(StoreError):
    """Could not reach the store."""

    def __init__(self, message: str, address: Optional[str] = None) -> None:
        super().__init__(message, status_code=503, error="connection_error")
        self.address = address


def error_from_response(status_code: int, body: Mapping[str, Any] | None) -> StoreError:
    """Build the store error matching an HTTP error response."""
    body = body or {}
    error = body.get("error")
    reason = body.get("reason")
    message = f"{status_code} {error or 'error'}: {reason or 'no reason given'}"
    if status_code == 404:
        return NotFoundError(message, reason=reason)
    if status_code == 409:
        return ConflictError(message)
    return StoreError(message, status_code=status_code, error=error, reason=reason)


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for document store backends.

    Ordering contract:
        - View rows are returned in view collation order of their keys
        - Rows with equal keys are ordered by document id

    Example:
        >>> store = CouchStore.from_settings(settings)
        >>> await store.connect()
        >>> res = await store.insert({"_id": "WIDGET:1", "name": "gear"})
        >>> doc = await store.get(res["id"])
    """

    @abstractmethod
    async def get(self, doc_id: str) -> Dict[str, Any]:
        """Fetch a document by qualified id.

        Raises:
            NotFoundError: If the document is missing or deleted
        """
        ...

    @abstractmethod
    async def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Create or update a document.

        Returns:
            {"ok": True, "id": ..., "rev": ...}

        Raises:
            ConflictError: If _rev is missing for an existing id, or stale
        """
        ...

    @abstractmethod
    async def destroy(self, doc_id: str, rev: str) -> Dict[str, Any]:
        """Delete a document at a revision.

        Returns:
            {"ok": True, "id": ..., "rev": <tombstone revision>}
        """
        ...

    @abstractmethod
    async def partitioned_view(
        self,
        partition: str,
        design_doc: str,
        view_name: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Query a view within one partition.

        Returns:
            {"rows": [{"id", "key", "value", "doc"?}, ...]}
        """
        ...

    @abstractmethod
    async def replicate(self, target: Any, **options: Any) -> Dict[str, Any]:
        """Replicate this database into ``target``."""
        ...


def create_store(settings: "StoreSettings") -> DocumentStore:
    """Factory function to create a store from settings.

    Raises:
        ValueError: If the backend is not supported
    """
    from ..config import StoreBackend
    from .couch import CouchStore
    from .memory import InMemoryDocumentStore

    if settings.backend == StoreBackend.COUCHDB:
        return CouchStore.from_settings(settings)
    elif settings.backend == StoreBackend.MEMORY:
        return InMemoryDocumentStore()
    else:
        raise ValueError(f"Unsupported store backend: {settings.backend}")
