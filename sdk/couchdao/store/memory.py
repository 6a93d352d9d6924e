"""
In-memory document store implementation for testing.

This module provides a CouchDB-compatible store that keeps everything in
process, for:
- Unit and integration tests
- Local development without a CouchDB server

Views are defined with Python map callables instead of JavaScript:

    >>> store = InMemoryDocumentStore()
    >>> await store.put_design("WIDGET", {
    ...     "by-name": ViewDef(lambda doc: [([doc["name"]], 1)] if "name" in doc else [],
    ...                        reduce="_count"),
    ... })

Invariants:
    - All data is lost on process exit
    - Revisions are "<n>-<md5>" and advance by one per write
    - Rows are ordered by CouchDB collation of their keys, then by document id
    - Access is serialized with an asyncio lock

How to change safely:
    - This is test-only code, changes don't affect CouchStore
    - Keep responses shaped like CouchDB's
"""

from __future__ import annotations

import asyncio
import copy
import hashlib
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .base import ConflictError, NotFoundError, StoreError

logger = logging.getLogger(__name__)

MapFunction = Callable[[Dict[str, Any]], Iterable[Tuple[Any, Any]]]
ReduceFunction = Callable[[List[Any]], Any]


@dataclass(frozen=True)
class ViewDef:
    """A view in a design document.

    Attributes:
        map: Called with each document, yields (key, value) pairs
        reduce: "_count", "_sum", a callable over values, or None
    """

    map: MapFunction
    reduce: Union[str, ReduceFunction, None] = None


def collation_key(value: Any) -> Tuple[Any, ...]:
    """Sort key approximating CouchDB view collation.

    null < false < true < numbers < strings < arrays < objects. Strings sort
    case-insensitively with lowercase first on ties, as ICU collation does.
    """
    if value is None:
        return (0,)
    if value is False:
        return (1,)
    if value is True:
        return (2,)
    if isinstance(value, (int, float)):
        return (3, value)
    if isinstance(value, str):
        return (4, value.casefold(), value.swapcase())
    if isinstance(value, (list, tuple)):
        return (5, tuple(collation_key(v) for v in value))
    if isinstance(value, Mapping):
        return (6, tuple((collation_key(k), collation_key(v)) for k, v in value.items()))
    raise TypeError(f"{type(value).__name__} is not a JSON value")


def _rev_number(rev: str) -> int:
    return int(rev.split("-", 1)[0])


def _make_rev(number: int, doc: Mapping[str, Any]) -> str:
    digest = hashlib.md5(
        json.dumps(doc, sort_keys=True, default=str).encode() + str(number).encode()
    ).hexdigest()
    return f"{number}-{digest}"


def _query_error(reason: str) -> StoreError:
    return StoreError(
        f"400 query_parse_error: {reason}",
        status_code=400,
        error="query_parse_error",
        reason=reason,
    )


@dataclass
class _Row:
    sort_key: Tuple[Any, ...]
    doc_id: str
    key: Any
    value: Any


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore for testing.

    Attributes:
        partitioned: Whether document ids must be "<partition>:<id>"
    """

    def __init__(self, partitioned: bool = True) -> None:
        self.partitioned = partitioned
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._tombstones: Dict[str, str] = {}
        self._designs: Dict[str, Dict[str, ViewDef]] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._docs)

    async def put_design(self, name: str, views: Mapping[str, ViewDef]) -> None:
        """Create or replace a design document's views."""
        async with self._lock:
            self._designs[name] = dict(views)
        logger.debug(f"Installed design document _design/{name} with views {sorted(views)}")

    # documents ##############################################################

    async def get(self, doc_id: str) -> Dict[str, Any]:
        async with self._lock:
            doc = self._docs.get(doc_id)
            if doc is None:
                reason = "deleted" if doc_id in self._tombstones else "missing"
                raise NotFoundError(f"404 not_found: {reason}", reason=reason)
            return copy.deepcopy(doc)

    async def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        doc = copy.deepcopy(dict(doc))
        doc_id = doc.get("_id") or uuid.uuid4().hex
        if self.partitioned and not doc_id.startswith("_design/"):
            partition, sep, local = doc_id.partition(":")
            if not sep or not partition or not local:
                raise StoreError(
                    "400 illegal_docid: Doc id must be of form partition:id",
                    status_code=400,
                    error="illegal_docid",
                    reason="Doc id must be of form partition:id",
                )

        async with self._lock:
            given = doc.get("_rev")
            current = self._docs.get(doc_id)
            if current is not None:
                if given != current["_rev"]:
                    raise ConflictError()
                number = _rev_number(current["_rev"])
            elif doc_id in self._tombstones:
                if given and given != self._tombstones[doc_id]:
                    raise ConflictError()
                number = _rev_number(self._tombstones[doc_id])
            else:
                if given:
                    raise ConflictError()
                number = 0

            doc["_id"] = doc_id
            doc.pop("_rev", None)
            rev = _make_rev(number + 1, doc)
            doc["_rev"] = rev
            self._docs[doc_id] = doc
            self._tombstones.pop(doc_id, None)

        logger.debug(f"Stored {doc_id} at {rev}")
        return {"ok": True, "id": doc_id, "rev": rev}

    async def destroy(self, doc_id: str, rev: str) -> Dict[str, Any]:
        async with self._lock:
            current = self._docs.get(doc_id)
            if current is None:
                reason = "deleted" if doc_id in self._tombstones else "missing"
                raise NotFoundError(f"404 not_found: {reason}", reason=reason)
            if rev != current["_rev"]:
                raise ConflictError()

            tombstone = _make_rev(_rev_number(rev) + 1, {"_id": doc_id, "_deleted": True})
            del self._docs[doc_id]
            self._tombstones[doc_id] = tombstone

        logger.debug(f"Deleted {doc_id} at {tombstone}")
        return {"ok": True, "id": doc_id, "rev": tombstone}

    # views ##################################################################

    def _map(self, partition: str, view: ViewDef) -> List[_Row]:
        prefix = f"{partition}:"
        rows = []
        for doc_id, doc in self._docs.items():
            if not doc_id.startswith(prefix):
                continue
            try:
                emitted = list(view.map(copy.deepcopy(doc)))
            except Exception as e:
                # A failing map function skips the document, as in CouchDB
                logger.warning(f"Map function failed for {doc_id}: {e}")
                continue
            for key, value in emitted:
                rows.append(_Row(collation_key(key), doc_id, key, value))
        rows.sort(key=lambda r: (r.sort_key, r.doc_id))
        return rows

    @staticmethod
    def _select(rows: List[_Row], options: Mapping[str, Any]) -> List[_Row]:
        descending = bool(options.get("descending", False))
        if descending:
            rows = list(reversed(rows))

        if "keys" in options:
            selected = []
            for key in options["keys"]:
                wanted = collation_key(key)
                selected.extend(r for r in rows if r.sort_key == wanted)
            return selected

        if options.get("key") is not None:
            wanted = collation_key(options["key"])
            return [r for r in rows if r.sort_key == wanted]

        start = options.get("startkey", options.get("start_key"))
        end = options.get("endkey", options.get("end_key"))
        inclusive_end = options.get("inclusive_end", True)

        if start is not None:
            low = collation_key(start)
            rows = [r for r in rows if (r.sort_key <= low if descending else r.sort_key >= low)]
        if end is not None:
            high = collation_key(end)
            if descending:
                rows = [r for r in rows if (r.sort_key >= high if inclusive_end else r.sort_key > high)]
            else:
                rows = [r for r in rows if (r.sort_key <= high if inclusive_end else r.sort_key < high)]
        return rows

    @staticmethod
    def _reduce_values(reduce: Union[str, ReduceFunction], values: List[Any]) -> Any:
        if reduce == "_count":
            return len(values)
        if reduce == "_sum":
            return sum(values)
        if callable(reduce):
            return reduce(values)
        raise StoreError(
            f"400 invalid_design_doc: unsupported reduce {reduce!r}",
            status_code=400,
            error="invalid_design_doc",
            reason=f"unsupported reduce {reduce!r}",
        )

    @staticmethod
    def _page(items: List[Any], options: Mapping[str, Any]) -> List[Any]:
        skip = int(options.get("skip", 0) or 0)
        limit = options.get("limit")
        items = items[skip:]
        if limit is not None:
            items = items[: int(limit)]
        return items

    async def partitioned_view(
        self,
        partition: str,
        design_doc: str,
        view_name: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        options = dict(options or {})
        async with self._lock:
            view = self._designs.get(design_doc, {}).get(view_name)
            if view is None:
                raise NotFoundError("404 not_found: missing_named_view", reason="missing_named_view")

            reduce = options.get("reduce")
            if reduce is None:
                reduce = view.reduce is not None
            if reduce and view.reduce is None:
                raise _query_error("Reduce is invalid for map-only views.")
            if reduce and options.get("include_docs"):
                raise _query_error("`include_docs` is invalid for reduce")

            all_rows = self._map(partition, view)
            rows = self._select(all_rows, options)

            if reduce:
                return {"rows": self._page(self._reduced(view, rows, options), options)}

            offset = int(options.get("skip", 0) or 0)
            out = []
            for row in self._page(rows, options):
                item: Dict[str, Any] = {"id": row.doc_id, "key": row.key, "value": row.value}
                if options.get("include_docs"):
                    item["doc"] = copy.deepcopy(self._docs[row.doc_id])
                out.append(item)
            return {"total_rows": len(all_rows), "offset": offset, "rows": out}

    def _reduced(self, view: ViewDef, rows: List[_Row], options: Mapping[str, Any]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        if not options.get("group"):
            value = self._reduce_values(view.reduce, [r.value for r in rows])
            return [{"key": None, "value": value}]

        groups: List[Tuple[Any, List[Any]]] = []
        for row in rows:
            if groups and collation_key(groups[-1][0]) == row.sort_key:
                groups[-1][1].append(row.value)
            else:
                groups.append((row.key, [row.value]))
        return [
            {"key": key, "value": self._reduce_values(view.reduce, values)}
            for key, values in groups
        ]

    # replication ############################################################

    async def replicate(self, target: Any, **options: Any) -> Dict[str, Any]:
        """Copy live documents and design documents into another in-memory store."""
        if not isinstance(target, InMemoryDocumentStore):
            raise StoreError(
                "400 bad_request: target must be an in-memory store",
                status_code=400,
                error="bad_request",
                reason="target must be an in-memory store",
            )
        async with self._lock:
            docs = copy.deepcopy(self._docs)
            designs = dict(self._designs)

        written = 0
        async with target._lock:
            for doc_id, doc in docs.items():
                existing = target._docs.get(doc_id)
                if existing is not None and existing["_rev"] == doc["_rev"]:
                    continue
                target._docs[doc_id] = doc
                target._tombstones.pop(doc_id, None)
                written += 1
            target._designs.update(designs)

        logger.info(f"Replicated {written} documents")
        return {"ok": True, "docs_read": len(docs), "docs_written": written}
