"""
Document store backends.

- DocumentStore: Protocol DAO depends on
- CouchStore: CouchDB over HTTP (production)
- InMemoryDocumentStore: in-process store (tests, local development)
"""

from .base import (
    ConflictError,
    DocumentStore,
    NotFoundError,
    StoreConnectionError,
    StoreError,
    create_store,
)
from .couch import CouchStore
from .memory import InMemoryDocumentStore, ViewDef, collation_key

__all__ = [
    "DocumentStore",
    "create_store",
    "CouchStore",
    "InMemoryDocumentStore",
    "ViewDef",
    "collation_key",
    "StoreError",
    "NotFoundError",
    "ConflictError",
    "StoreConnectionError",
]
