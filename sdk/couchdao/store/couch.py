"""
CouchDB store backend over HTTP.

This module provides CouchStore, an async CouchDB client implementing the
DocumentStore protocol with httpx:
- Document get/insert/destroy with revision handling done by the server
- Partitioned view queries
- Database and design document management
- Server side replication

Invariants:
    - Non-2xx responses raise StoreError subclasses built from the error body
    - Transport failures raise StoreConnectionError
    - Credentials travel in the auth header and never appear in logs

Example:
    >>> async with CouchStore.from_settings(StoreSettings()) as store:
    ...     await store.create_database()
    ...     res = await store.insert({"_id": "WIDGET:1", "name": "gear"})
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, cast
from urllib.parse import quote, urlsplit, urlunsplit

import httpx

from ..config import StoreSettings
from .base import StoreConnectionError, StoreError, error_from_response

logger = logging.getLogger(__name__)

# View parameters CouchDB expects as JSON values
JSON_PARAMS = frozenset({"key", "startkey", "endkey", "start_key", "end_key"})


def _encode_param(name: str, value: Any) -> str:
    if name in JSON_PARAMS:
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_view_params(options: Dict[str, Any]) -> Dict[str, str]:
    """Encode view options as CouchDB query parameters.

    Options set to None are dropped. "keys" is not a query parameter; it is
    sent in the request body by partitioned_view().
    """
    return {
        name: _encode_param(name, value)
        for name, value in options.items()
        if value is not None and name != "keys"
    }


def _doc_path(doc_id: str) -> str:
    if doc_id.startswith("_design/"):
        return "_design/" + quote(doc_id[len("_design/"):], safe="")
    return quote(doc_id, safe="")


class CouchStore:
    """Async CouchDB database handle.

    Attributes:
        url: Server URL
        database: Database name
    """

    def __init__(
        self,
        url: str = "http://localhost:5984",
        database: str = "couchdao",
        *,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 30.0,
        partitioned: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            url: CouchDB server URL
            database: Database name
            username: Basic auth user
            password: Basic auth password
            timeout: Request timeout in seconds
            partitioned: Whether create_database() creates a partitioned database
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.url = url.rstrip("/")
        self.database = database
        self._username = username
        self._password = password
        self._timeout = timeout
        self._partitioned = partitioned
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: StoreSettings, **kwargs: Any) -> CouchStore:
        """Build a client from StoreSettings."""
        return cls(
            settings.url,
            settings.database,
            username=settings.username,
            password=settings.password.get_secret_value() if settings.password else None,
            timeout=settings.timeout,
            partitioned=settings.partitioned,
            **kwargs,
        )

    def __repr__(self) -> str:
        return f"CouchStore(url={self.url!r}, database={self.database!r})"

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Open the HTTP connection pool."""
        if self._client is not None:
            return
        auth = None
        if self._username is not None:
            auth = httpx.BasicAuth(self._username, self._password or "")
        self._client = httpx.AsyncClient(
            base_url=self.url,
            auth=auth,
            timeout=self._timeout,
            headers={"Accept": "application/json"},
            transport=self._transport,
        )
        logger.debug(f"Connected to CouchDB at {self.url}")

    async def close(self) -> None:
        """Close the HTTP connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("Disconnected from CouchDB")

    async def __aenter__(self) -> CouchStore:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        body: Any = None,
    ) -> Dict[str, Any]:
        if self._client is None:
            await self.connect()
        client = cast(httpx.AsyncClient, self._client)

        try:
            response = await client.request(method, path, params=params, json=body)
        except httpx.TransportError as e:
            raise StoreConnectionError(f"CouchDB request failed: {e}", address=self.url) from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error:
            raise error_from_response(
                response.status_code, payload if isinstance(payload, dict) else None
            )
        return payload if isinstance(payload, dict) else {}

    def _db_path(self, *parts: str) -> str:
        return "/".join([quote(self.database, safe=""), *parts])

    # databases ##############################################################

    async def create_database(self) -> bool:
        """Create the database.

        Returns:
            True if created, False if it already existed
        """
        params = {"partitioned": "true"} if self._partitioned else None
        try:
            await self._request("PUT", self._db_path(), params=params)
        except StoreError as e:
            if e.status_code == 412:
                return False
            raise
        logger.info(f"Created database {self.database} (partitioned={self._partitioned})")
        return True

    async def delete_database(self) -> None:
        await self._request("DELETE", self._db_path())
        logger.info(f"Deleted database {self.database}")

    async def put_design(self, name: str, views: Dict[str, Dict[str, str]]) -> Dict[str, Any]:
        """Create or replace the design document ``_design/<name>``.

        Args:
            name: Design document name (DAO uses the type name)
            views: View name to {"map": <js>, "reduce": <builtin or js>}
        """
        doc_id = f"_design/{name}"
        doc: Dict[str, Any] = {
            "_id": doc_id,
            "views": views,
            "options": {"partitioned": self._partitioned},
        }
        try:
            current = await self.get(doc_id)
            doc["_rev"] = current["_rev"]
        except StoreError as e:
            if e.status_code != 404:
                raise
        res = await self.insert(doc)
        logger.info(f"Installed design document {doc_id} with views {sorted(views)}")
        return res

    # documents ##############################################################

    async def get(self, doc_id: str) -> Dict[str, Any]:
        return await self._request("GET", self._db_path(_doc_path(doc_id)))

    async def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        if doc.get("_id"):
            return await self._request("PUT", self._db_path(_doc_path(doc["_id"])), body=doc)
        return await self._request("POST", self._db_path(), body=doc)

    async def destroy(self, doc_id: str, rev: str) -> Dict[str, Any]:
        return await self._request(
            "DELETE", self._db_path(_doc_path(doc_id)), params={"rev": rev}
        )

    # views ##################################################################

    async def partitioned_view(
        self,
        partition: str,
        design_doc: str,
        view_name: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        options = dict(options or {})
        path = self._db_path(
            "_partition",
            quote(partition, safe=""),
            "_design",
            quote(design_doc, safe=""),
            "_view",
            quote(view_name, safe=""),
        )
        params = encode_view_params(options)
        if "keys" in options:
            return await self._request("POST", path, params=params, body={"keys": options["keys"]})
        return await self._request("GET", path, params=params)

    # replication ############################################################

    def _replication_url(self, database: str) -> str:
        """Absolute database URL with credentials, for the replicator only."""
        parts = urlsplit(self.url)
        netloc = parts.netloc
        if self._username is not None:
            userinfo = quote(self._username, safe="")
            if self._password is not None:
                userinfo += ":" + quote(self._password, safe="")
            netloc = f"{userinfo}@{netloc}"
        path = parts.path.rstrip("/") + "/" + quote(database, safe="")
        return urlunsplit((parts.scheme, netloc, path, "", ""))

    async def replicate(self, target: Any, **options: Any) -> Dict[str, Any]:
        """One-shot replication of this database into ``target``.

        Args:
            target: Database name on the same server, or an absolute URL
            **options: Extra replicator fields (e.g. create_target=True)
        """
        target_url = str(target)
        if "://" not in target_url:
            target_url = self._replication_url(target_url)
        logger.info(f"Replicating {self.database} to {urlsplit(target_url).path.lstrip('/')}")
        body = {"source": self._replication_url(self.database), "target": target_url, **options}
        return await self._request("POST", "_replicate", body=body)
