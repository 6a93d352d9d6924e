"""
couchdao - Data access objects for partitioned document databases.

This package provides a validating accessor over a CouchDB-style store:
- DAO bound to one document type (keyspace partition)
- Audit field schema and validation
- touch() for creator/modifier stamping
- Store backends: CouchStore (httpx) and InMemoryDocumentStore

Example:
    >>> from couchdao import DAO, CouchStore, StoreSettings, touch
    >>>
    >>> async with CouchStore.from_settings(StoreSettings()) as db:
    ...     widgets = DAO("WIDGET", db)
    ...     doc = await widgets.create(touch({"_id": widgets.uuid()}, "alice"))
    ...     same = await widgets.retrieve(widgets.local_id(doc["_id"]))

Invariants:
    - Every document id handled by DAO("T", ...) starts with "T:"
    - Writes of existing documents require their current _rev

Version: 1.0.0
"""

__version__ = "1.0.0"

from .config import StoreBackend, StoreSettings
from .dao import DAO, now_seconds, revision_of, touch
from .errors import (
    AlreadyExists,
    DaoError,
    IdentityMismatch,
    InvalidArgument,
    InvalidDocument,
    NotUnique,
    PreconditionFailed,
)
from .schema import DocumentSchema, FieldDef, FieldKind
from .store import (
    ConflictError,
    CouchStore,
    DocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StoreConnectionError,
    StoreError,
    ViewDef,
    create_store,
)
from .validate import ValidationIssue, ValidationResult, validate_document

__all__ = [
    # Version
    "__version__",
    # Accessor
    "DAO",
    "touch",
    "now_seconds",
    "revision_of",
    # Schema
    "DocumentSchema",
    "FieldDef",
    "FieldKind",
    "ValidationIssue",
    "ValidationResult",
    "validate_document",
    # Stores
    "DocumentStore",
    "CouchStore",
    "InMemoryDocumentStore",
    "ViewDef",
    "create_store",
    "StoreBackend",
    "StoreSettings",
    # Errors
    "DaoError",
    "InvalidArgument",
    "InvalidDocument",
    "AlreadyExists",
    "IdentityMismatch",
    "PreconditionFailed",
    "NotUnique",
    "StoreError",
    "NotFoundError",
    "ConflictError",
    "StoreConnectionError",
]
