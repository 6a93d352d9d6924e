"""
Unit tests for DAO with a mock store.

Tests cover:
- Constructor checks
- Argument and document checks before store calls
- Options and keys sent to the store
- Error propagation from the store
"""

import re
import time
from unittest.mock import AsyncMock

import pytest

from couchdao.dao import DAO
from couchdao.errors import (
    AlreadyExists,
    IdentityMismatch,
    InvalidArgument,
    InvalidDocument,
    NotUnique,
    PreconditionFailed,
)
from couchdao.store.base import ConflictError, NotFoundError, StoreError
from couchdao.store.memory import InMemoryDocumentStore


def make_doc(doc_id="WIDGET:test-1", **extra):
    now = int(time.time())
    doc = {"_id": doc_id, "c_by": "admin", "c_at": now, "m_by": "admin", "m_at": now}
    doc.update(extra)
    return doc


@pytest.fixture
def store():
    """Mock store with async methods."""
    store = AsyncMock(spec=InMemoryDocumentStore)
    store.insert.return_value = {"ok": True, "id": "WIDGET:test-1", "rev": "2-new"}
    store.destroy.return_value = {"ok": True, "id": "WIDGET:test-1", "rev": "3-gone"}
    store.partitioned_view.return_value = {"rows": []}
    return store


@pytest.fixture
def dao(store):
    return DAO("WIDGET", store)


def view_call(store):
    """(partition, design_doc, view_name, options) of the last view query."""
    return store.partitioned_view.await_args.args


class TestConstructor:
    """Tests for DAO()."""

    def test_fails_without_type(self, store):
        with pytest.raises(InvalidArgument, match="bad dao type name"):
            DAO(None, store)

    def test_fails_with_empty_type(self, store):
        with pytest.raises(InvalidArgument, match="bad dao type name"):
            DAO("", store)

    def test_fails_without_db(self):
        with pytest.raises(InvalidArgument, match="bad db type"):
            DAO("WIDGET", None)

    def test_fails_without_store_db(self):
        with pytest.raises(InvalidArgument, match="bad db instance"):
            DAO("WIDGET", {})

    def test_constructs(self, store):
        dao = DAO("WIDGET", store)
        assert dao.type == "WIDGET"
        assert dao.db is store
        assert dao.schema.type_name == "WIDGET"

    def test_invalid_argument_is_value_error(self):
        with pytest.raises(ValueError):
            DAO("WIDGET", object())


class TestIds:
    """Tests for uuid / qualify / local_id."""

    def test_uuid(self, dao):
        uuid1 = dao.uuid()
        assert re.fullmatch(r"WIDGET:[a-zA-Z0-9]{22}", uuid1)
        assert dao.uuid() != uuid1

    def test_qualify(self, dao):
        assert dao.qualify("abc") == "WIDGET:abc"

    def test_qualify_rejects_empty(self, dao):
        with pytest.raises(InvalidArgument):
            dao.qualify("")

    def test_local_id(self, dao):
        assert dao.local_id("WIDGET:a:b") == "a:b"

    def test_local_id_other_type(self, dao):
        with pytest.raises(InvalidArgument):
            dao.local_id("GADGET:abc")

    @pytest.mark.parametrize("doc_id", ["no-separator", "WIDGET", ":abc"])
    def test_local_id_unqualified(self, dao, doc_id):
        with pytest.raises(InvalidArgument, match="is not a WIDGET document id"):
            dao.local_id(doc_id)


class TestValidate:
    """Tests for DAO.validate."""

    def test_fails_without_document(self, dao):
        with pytest.raises(InvalidArgument, match="bad document"):
            dao.validate(None)

    def test_empty_document(self, dao):
        assert len(dao.validate({}).errors) == 5

    def test_minimal_document(self, dao):
        assert dao.validate(make_doc()).valid


class TestCreate:
    """Tests for DAO.create."""

    @pytest.mark.asyncio
    async def test_fails_without_document(self, dao, store):
        with pytest.raises(InvalidArgument, match="bad document"):
            await dao.create(None)
        store.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fails_with_empty_document(self, dao, store):
        with pytest.raises(InvalidDocument):
            await dao.create({})
        store.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_document_with_rev(self, dao, store):
        with pytest.raises(AlreadyExists, match="document may already exist"):
            await dao.create(make_doc(_rev="xxx-any-value-here"))
        store.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_rev_even_when_invalid(self, dao):
        with pytest.raises(AlreadyExists):
            await dao.create({"_rev": "1-abc"})

    @pytest.mark.asyncio
    async def test_inserts_and_merges_rev(self, dao, store):
        doc = make_doc(test="test-value")

        created = await dao.create(doc)

        store.insert.assert_awaited_once_with(doc)
        assert created["_rev"] == "2-new"
        assert created["test"] == "test-value"
        assert "_rev" not in doc

    @pytest.mark.asyncio
    async def test_none_rev_is_treated_as_new(self, dao, store):
        doc = make_doc(_rev=None)

        created = await dao.create(doc)

        store.insert.assert_awaited_once_with(make_doc())
        assert created["_rev"] == "2-new"

    @pytest.mark.asyncio
    async def test_conflict_propagates(self, dao, store):
        store.insert.side_effect = ConflictError()
        with pytest.raises(ConflictError) as exc_info:
            await dao.create(make_doc())
        assert exc_info.value.status_code == 409


class TestRetrieve:
    """Tests for DAO.retrieve."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", [None, 123, ""])
    async def test_bad_id(self, dao, store, bad_id):
        with pytest.raises(InvalidArgument, match="bad document id"):
            await dao.retrieve(bad_id)
        store.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_qualifies_id(self, dao, store):
        store.get.return_value = make_doc(_rev="1-a")

        doc = await dao.retrieve("test-1")

        store.get.assert_awaited_once_with("WIDGET:test-1")
        assert doc["_rev"] == "1-a"

    @pytest.mark.asyncio
    async def test_not_found_is_none(self, dao, store):
        store.get.side_effect = NotFoundError("404 not_found: missing")
        assert await dao.retrieve("does-not-exist") is None

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, dao, store):
        store.get.side_effect = StoreError("401 unauthorized", status_code=401)
        with pytest.raises(StoreError) as exc_info:
            await dao.retrieve("test-1")
        assert exc_info.value.status_code == 401


class TestUpdate:
    """Tests for DAO.update."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", [None, 123, ""])
    async def test_bad_id(self, dao, bad_id):
        with pytest.raises(InvalidArgument, match="bad document id"):
            await dao.update(bad_id, make_doc(_rev="1-a"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_doc", [None, 123])
    async def test_bad_document(self, dao, bad_doc):
        with pytest.raises(InvalidArgument, match="bad document"):
            await dao.update("test-1", bad_doc)

    @pytest.mark.asyncio
    async def test_empty_document(self, dao):
        with pytest.raises(InvalidDocument):
            await dao.update("test-1", {})

    @pytest.mark.asyncio
    async def test_id_mismatch(self, dao, store):
        with pytest.raises(IdentityMismatch) as exc_info:
            await dao.update("test-2", make_doc(_rev="1-123456789"))

        assert exc_info.value.expected_id == "WIDGET:test-2"
        assert exc_info.value.actual_id == "WIDGET:test-1"
        store.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_id_mismatch_checked_before_rev(self, dao):
        with pytest.raises(IdentityMismatch):
            await dao.update("test-2", make_doc())

    @pytest.mark.asyncio
    async def test_missing_rev(self, dao, store):
        with pytest.raises(PreconditionFailed, match="document must already exist"):
            await dao.update("test-1", make_doc())
        store.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_none_rev(self, dao, store):
        with pytest.raises(PreconditionFailed):
            await dao.update("test-1", make_doc(_rev=None))
        store.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_updates_and_merges_rev(self, dao, store):
        doc = make_doc(_rev="1-old", test="updated")

        updated = await dao.update("test-1", doc)

        store.insert.assert_awaited_once_with(doc)
        assert updated["_rev"] == "2-new"
        assert updated["test"] == "updated"
        assert doc["_rev"] == "1-old"

    @pytest.mark.asyncio
    async def test_stale_rev_conflict_propagates(self, dao, store):
        store.insert.side_effect = ConflictError()
        with pytest.raises(ConflictError):
            await dao.update("test-1", make_doc(_rev="1-stale"))


class TestDelete:
    """Tests for DAO.delete."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", [None, 123, ""])
    async def test_bad_id(self, dao, bad_id):
        with pytest.raises(InvalidArgument, match="bad document id"):
            await dao.delete(bad_id, make_doc(_rev="1-a"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_doc", [None, 123])
    async def test_bad_document(self, dao, bad_doc):
        with pytest.raises(InvalidArgument, match="bad document"):
            await dao.delete("test-1", bad_doc)

    @pytest.mark.asyncio
    async def test_empty_document(self, dao):
        with pytest.raises(InvalidDocument, match="invalid document"):
            await dao.delete("test-1", {})

    @pytest.mark.asyncio
    async def test_id_mismatch(self, dao):
        with pytest.raises(IdentityMismatch):
            await dao.delete("test-2", make_doc(_rev="1-a"))

    @pytest.mark.asyncio
    async def test_missing_rev(self, dao):
        with pytest.raises(PreconditionFailed):
            await dao.delete("test-1", make_doc())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rev", [None, ""])
    async def test_none_or_empty_rev(self, dao, store, rev):
        with pytest.raises(PreconditionFailed):
            await dao.delete("test-1", make_doc(_rev=rev))
        store.destroy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_audit_fields_not_required(self, dao, store):
        await dao.delete("test-1", {"_id": "WIDGET:test-1", "_rev": "2-a"})
        store.destroy.assert_awaited_once_with("WIDGET:test-1", "2-a")

    @pytest.mark.asyncio
    async def test_returns_store_ack(self, dao, store):
        res = await dao.delete("test-1", make_doc(_rev="2-a"))
        assert res == {"ok": True, "id": "WIDGET:test-1", "rev": "3-gone"}


class TestList:
    """Tests for DAO.list."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_view", [None, 123, ""])
    async def test_bad_view(self, dao, bad_view):
        with pytest.raises(InvalidArgument, match="invalid view"):
            await dao.list(bad_view)

    @pytest.mark.asyncio
    async def test_bad_options(self, dao):
        with pytest.raises(InvalidArgument, match="invalid options"):
            await dao.list("by-name", 123)

    @pytest.mark.asyncio
    async def test_defaults(self, dao, store):
        store.partitioned_view.return_value = {
            "rows": [{"id": "WIDGET:1", "key": ["A"], "value": 1, "doc": {"_id": "WIDGET:1"}}]
        }

        res = await dao.list("by-name")

        assert view_call(store) == (
            "WIDGET",
            "WIDGET",
            "by-name",
            {"reduce": False, "include_docs": True},
        )
        assert res == [{"_id": "WIDGET:1"}]

    @pytest.mark.asyncio
    async def test_caller_options_win_and_pass_through(self, dao, store):
        store.partitioned_view.return_value = {
            "rows": [{"id": "WIDGET:1", "key": ["A"], "value": {"id": "1"}}]
        }

        res = await dao.list("by-name", {"include_docs": False, "limit": 5, "stale": "ok"})

        assert view_call(store)[3] == {
            "reduce": False,
            "include_docs": False,
            "limit": 5,
            "stale": "ok",
        }
        assert res == [{"id": "1"}]


class TestFindOne:
    """Tests for DAO.find_one."""

    @pytest.mark.asyncio
    async def test_bad_view(self, dao):
        with pytest.raises(InvalidArgument, match="invalid view"):
            await dao.find_one(123, "x")

    @pytest.mark.asyncio
    async def test_requires_key(self, dao, store):
        with pytest.raises(InvalidArgument, match="invalid key"):
            await dao.find_one("by-name")
        store.partitioned_view.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_query_options(self, dao, store):
        await dao.find_one("by-type-status", "T1", "ACTIVE")
        assert view_call(store)[3] == {
            "reduce": False,
            "include_docs": True,
            "limit": 2,
            "key": ["T1", "ACTIVE"],
        }

    @pytest.mark.asyncio
    async def test_none_when_no_rows(self, dao):
        assert await dao.find_one("by-name", "nope") is None

    @pytest.mark.asyncio
    async def test_single_row(self, dao, store):
        store.partitioned_view.return_value = {"rows": [{"doc": {"_id": "WIDGET:1"}}]}
        assert await dao.find_one("by-name", "a") == {"_id": "WIDGET:1"}

    @pytest.mark.asyncio
    async def test_not_unique(self, dao, store):
        store.partitioned_view.return_value = {"rows": [{"doc": {}}, {"doc": {}}]}
        with pytest.raises(NotUnique) as exc_info:
            await dao.find_one("by-status", "ACTIVE")
        assert exc_info.value.key == ["ACTIVE"]


class TestExists:
    """Tests for DAO.exists."""

    @pytest.mark.asyncio
    async def test_requires_key(self, dao):
        with pytest.raises(InvalidArgument, match="invalid key"):
            await dao.exists("by-name")

    @pytest.mark.asyncio
    async def test_query_options(self, dao, store):
        assert await dao.exists("by-name", "a") is False
        assert view_call(store)[3] == {
            "reduce": False,
            "include_docs": False,
            "limit": 1,
            "key": ["a"],
        }

    @pytest.mark.asyncio
    async def test_true_when_rows(self, dao, store):
        store.partitioned_view.return_value = {"rows": [{"key": ["a"], "value": 1}]}
        assert await dao.exists("by-name", "a") is True


class TestCount:
    """Tests for DAO.count."""

    @pytest.mark.asyncio
    async def test_bad_view(self, dao):
        with pytest.raises(InvalidArgument, match="invalid view"):
            await dao.count("")

    @pytest.mark.asyncio
    async def test_unfiltered(self, dao, store):
        store.partitioned_view.return_value = {"rows": [{"key": None, "value": 3}]}
        assert await dao.count("by-name") == 3
        assert view_call(store)[3] == {"reduce": True}

    @pytest.mark.asyncio
    async def test_filtered(self, dao, store):
        store.partitioned_view.return_value = {"rows": [{"key": None, "value": 2}]}
        assert await dao.count("by-status", "ACTIVE") == 2
        assert view_call(store)[3] == {"reduce": True, "key": ["ACTIVE"]}

    @pytest.mark.asyncio
    async def test_zero_when_no_rows(self, dao):
        assert await dao.count("by-status", "UNKNOWN") == 0
