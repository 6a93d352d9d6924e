"""
Data access object for one document type in a partitioned database.

This module provides the DAO class, a thin validating layer over a
DocumentStore:
- Identity: ids are qualified as "<type>:<local-id>" and checked on every write
- Validation: documents must carry the audit fields before being written
- Views: partitioned view queries scoped to the type, with sane defaults
- Auditing: touch() stamps creator and modifier fields

Example:
    >>> store = CouchStore.from_settings(StoreSettings())
    >>> widgets = DAO("WIDGET", store)
    >>> doc = touch({"_id": widgets.uuid(), "name": "gear"}, "alice")
    >>> doc = await widgets.create(doc)
    >>> await widgets.find_one("by-name", "gear")

Invariants:
    - Argument and document checks run before any store call
    - Store errors propagate unchanged, except that retrieve() maps 404 to None
    - The accessor holds no per-call state; concurrent calls are independent
    - Conflicts are never retried here
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, MutableMapping
from typing import Any

from . import ids
from .errors import (
    AlreadyExists,
    IdentityMismatch,
    InvalidArgument,
    InvalidDocument,
    NotUnique,
    PreconditionFailed,
)
from .schema import DocumentSchema
from .store.base import DocumentStore, StoreError
from .validate import ValidationResult, validate_document, validate_or_raise

logger = logging.getLogger(__name__)

Document = dict[str, Any]


def now_seconds() -> int:
    """Current time as integer epoch seconds."""
    return int(time.time())


def revision_of(doc: Mapping[str, Any]) -> str | None:
    """Return the document's revision token, or None if it was never stored."""
    return doc.get("_rev") or None


def touch(doc: MutableMapping[str, Any], user_name: str) -> MutableMapping[str, Any]:
    """Stamp audit fields on a document in place.

    The creator fields (c_by, c_at) are set only if c_by is unset; the
    modifier fields (m_by, m_at) are overwritten on every call.

    Args:
        doc: Document to stamp (mutated)
        user_name: Acting user

    Returns:
        The same document object

    Raises:
        InvalidArgument: If doc is not a mapping or user_name is empty
    """
    if not isinstance(doc, MutableMapping):
        raise InvalidArgument("bad document", argument="doc")
    if not isinstance(user_name, str):
        raise InvalidArgument("bad user name", argument="user_name")
    if not user_name:
        raise InvalidArgument("invalid user name", argument="user_name")

    now = now_seconds()
    if doc.get("c_by") is None:
        doc["c_by"] = user_name
        doc["c_at"] = now
    doc["m_by"] = user_name
    doc["m_at"] = now
    return doc


def _check_id(id: Any) -> None:
    if not isinstance(id, str) or not id:
        raise InvalidArgument("bad document id", argument="id")


def _check_view(view_name: Any) -> None:
    if not isinstance(view_name, str) or not view_name:
        raise InvalidArgument("invalid view", argument="view_name")


def _check_key(key: tuple[Any, ...]) -> None:
    if not key:
        raise InvalidArgument("invalid key", argument="key")


class DAO:
    """Accessor for the documents of one type.

    Attributes:
        type: Partition and design document name shared by all documents
        db: Store handle (not owned; opened and closed by the caller)
        schema: Compiled audit-field schema for this type
    """

    touch = staticmethod(touch)

    def __init__(self, type_name: str, db: DocumentStore) -> None:
        """Bind an accessor to a type and a store.

        Args:
            type_name: Non-empty type name
            db: Store exposing get/insert/destroy/partitioned_view/replicate

        Raises:
            InvalidArgument: If the type name or store handle is unusable
        """
        if not isinstance(type_name, str) or not type_name:
            raise InvalidArgument("bad dao type name", argument="type_name")
        if db is None:
            raise InvalidArgument("bad db type", argument="db")
        # replicate() is only checked as a signature of a real store handle
        if not callable(getattr(db, "replicate", None)):
            raise InvalidArgument("bad db instance", argument="db")

        self.type = type_name
        self.db = db
        self.schema = DocumentSchema.for_type(type_name)

    def __repr__(self) -> str:
        return f"DAO(type={self.type!r})"

    # ids ####################################################################

    def uuid(self) -> str:
        """Generate a new qualified id for this type."""
        return ids.qualify(self.type, ids.short_uuid())

    def qualify(self, local_id: str) -> str:
        """Qualified document id for a local id."""
        _check_id(local_id)
        return ids.qualify(self.type, local_id)

    def local_id(self, doc_id: str) -> str:
        """Strip this accessor's type prefix from a qualified id."""
        _check_id(doc_id)
        try:
            type_name, local_id = ids.split_id(doc_id)
        except ValueError:
            type_name, local_id = None, ""
        if type_name != self.type:
            raise InvalidArgument(
                f"'{doc_id}' is not a {self.type} document id", argument="doc_id"
            )
        return local_id

    # validation #############################################################

    def validate(self, doc: Mapping[str, Any]) -> ValidationResult:
        """Validate a document against this type's schema.

        Raises:
            InvalidArgument: If doc is not a mapping
        """
        if not isinstance(doc, Mapping):
            raise InvalidArgument("bad document", argument="doc")
        return validate_document(self.schema, doc)

    def _validate_or_raise(self, doc: Any) -> None:
        if not isinstance(doc, Mapping):
            raise InvalidArgument("bad document", argument="doc")
        validate_or_raise(self.schema, doc)

    def _check_identity(self, id: str, doc: Mapping[str, Any]) -> str:
        expected = ids.qualify(self.type, id)
        if doc.get("_id") != expected:
            raise IdentityMismatch(
                "document id mismatch", expected_id=expected, actual_id=doc.get("_id")
            )
        if revision_of(doc) is None:
            raise PreconditionFailed("document must already exist", doc_id=expected)
        return expected

    # CRUD ###################################################################

    async def create(self, doc: Mapping[str, Any]) -> Document:
        """Insert a new document.

        Returns:
            A copy of the document with the store-assigned _rev

        Raises:
            InvalidArgument: If doc is not a mapping
            InvalidDocument: If doc fails validation
            AlreadyExists: If doc already carries a _rev, valid or not
        """
        if not isinstance(doc, Mapping):
            raise InvalidArgument("bad document", argument="doc")
        if doc.get("_rev") is not None:
            raise AlreadyExists("document may already exist", doc_id=doc.get("_id"))
        self._validate_or_raise(doc)

        body = {k: v for k, v in doc.items() if k != "_rev"}
        res = await self.db.insert(body)
        logger.debug(f"Created {res['id']} at {res['rev']}")
        return {**doc, "_rev": res["rev"]}

    async def retrieve(self, id: str) -> Document | None:
        """Fetch a document by local id.

        Returns:
            The document, or None if the store reports it as not found
        """
        _check_id(id)
        doc_id = ids.qualify(self.type, id)
        try:
            return await self.db.get(doc_id)
        except StoreError as e:
            if e.status_code != 404:
                raise
            logger.debug(f"Document {doc_id} not found")
            return None

    async def update(self, id: str, doc: Mapping[str, Any]) -> Document:
        """Write a new revision of an existing document.

        The store rejects a stale _rev with a conflict error.

        Returns:
            A copy of the document with the new _rev

        Raises:
            InvalidArgument: If id is not a non-empty string or doc is not a mapping
            InvalidDocument: If doc fails validation
            IdentityMismatch: If doc._id is not "<type>:<id>"
            PreconditionFailed: If doc has no _rev
        """
        _check_id(id)
        self._validate_or_raise(doc)
        self._check_identity(id, doc)

        res = await self.db.insert(dict(doc))
        logger.debug(f"Updated {res['id']} from {doc['_rev']} to {res['rev']}")
        return {**doc, "_rev": res["rev"]}

    async def delete(self, id: str, doc: Mapping[str, Any]) -> dict[str, Any]:
        """Delete a document at its current revision.

        Only the identity fields are checked; the audit fields need not be valid.

        Returns:
            The store acknowledgment, including the tombstone revision

        Raises:
            InvalidArgument: If id is not a non-empty string or doc is not a mapping
            InvalidDocument: If doc has no usable _id
            IdentityMismatch: If doc._id is not "<type>:<id>"
            PreconditionFailed: If doc has no _rev
        """
        _check_id(id)
        if not isinstance(doc, Mapping):
            raise InvalidArgument("bad document", argument="doc")
        if not isinstance(doc.get("_id"), str) or not doc["_id"]:
            raise InvalidDocument("invalid document")
        doc_id = self._check_identity(id, doc)

        res = await self.db.destroy(doc_id, doc["_rev"])
        logger.debug(f"Deleted {doc_id} at {doc['_rev']}")
        return res

    # views ##################################################################

    async def _query(self, view_name: str, options: dict[str, Any]) -> list[dict[str, Any]]:
        logger.debug(f"Querying view {self.type}/{view_name} with {options}")
        res = await self.db.partitioned_view(self.type, self.type, view_name, options)
        return list(res["rows"])

    async def list(self, view_name: str, opts: Mapping[str, Any] | None = None) -> list[Any]:
        """Query a view and return its documents or values.

        Defaults are reduce=False and include_docs=True; caller options win.
        Unrecognized options pass through to the store.

        Returns:
            Row documents if include_docs, else row values, in view key order
        """
        _check_view(view_name)
        if opts is None:
            opts = {}
        if not isinstance(opts, Mapping):
            raise InvalidArgument("invalid options", argument="opts")

        options = {"reduce": False, "include_docs": True, **opts}
        rows = await self._query(view_name, options)
        if options["include_docs"]:
            return [row.get("doc") for row in rows]
        return [row.get("value") for row in rows]

    async def find_one(self, view_name: str, *key: Any) -> Document | None:
        """Return the single document whose view key equals ``key``.

        Raises:
            NotUnique: If more than one row matches
        """
        _check_view(view_name)
        _check_key(key)
        rows = await self._query(
            view_name,
            {"reduce": False, "include_docs": True, "limit": 2, "key": list(key)},
        )
        if len(rows) > 1:
            raise NotUnique("key is not unique", view_name=view_name, key=key)
        return rows[0].get("doc") if rows else None

    async def exists(self, view_name: str, *key: Any) -> bool:
        """Whether at least one row matches ``key``. Uniqueness is not checked."""
        _check_view(view_name)
        _check_key(key)
        rows = await self._query(
            view_name,
            {"reduce": False, "include_docs": False, "limit": 1, "key": list(key)},
        )
        return bool(rows)

    async def count(self, view_name: str, *key: Any) -> int:
        """Reduced row count for ``key``, or for the whole view if no key is given.

        Returns:
            The reduced value, or 0 if the reduction produced no rows
        """
        _check_view(view_name)
        options: dict[str, Any] = {"reduce": True}
        if key:
            options["key"] = list(key)
        rows = await self._query(view_name, options)
        return rows[0]["value"] if rows else 0
