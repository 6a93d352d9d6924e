"""
E2E test fixtures for couchdao.

These tests require a running CouchDB (3.x, partitioned databases enabled).
Point COUCHDAO_URL / COUCHDAO_USERNAME / COUCHDAO_PASSWORD at it and set
COUCHDAO_E2E_TESTS=1. Each test run uses a fresh, uniquely named database
that is dropped afterwards.
"""

import os
import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from couchdao import CouchStore, StoreSettings, touch

# Skip E2E tests if not in E2E mode
E2E_ENABLED = os.environ.get("COUCHDAO_E2E_TESTS", "0") == "1"

pytestmark = pytest.mark.skipif(
    not E2E_ENABLED,
    reason="E2E tests disabled. Set COUCHDAO_E2E_TESTS=1 to enable."
)


def widget_map(*fields: str, display: bool = False) -> str:
    """JavaScript map function emitting [fields...] for WIDGET documents."""
    guard = " && ".join(f"doc.{f}" for f in fields)
    if display:
        key = "[doc.name.toUpperCase()]"
        value = "{id: doc._id.split(':')[1], name: doc.name, label: doc.label}"
    else:
        key = "[" + ", ".join(f"doc.{f}" for f in fields) + "]"
        value = "1"
    return (
        "function (doc) { "
        f"if (doc._id.split(':')[0] === 'WIDGET' && {guard}) emit({key}, {value}); "
        "}"
    )


WIDGET_VIEWS = {
    "display-order": {"map": widget_map("name", display=True), "reduce": "_count"},
    "by-name": {"map": widget_map("name"), "reduce": "_count"},
    "by-status": {"map": widget_map("status"), "reduce": "_count"},
    "by-type": {"map": widget_map("type"), "reduce": "_count"},
    "by-type-status": {"map": widget_map("type", "status"), "reduce": "_count"},
}

KNOWN_WIDGETS = [
    {"_id": "WIDGET:known-1", "name": "known-1", "label": "Known 1", "type": "T1", "status": "ACTIVE"},
    {"_id": "WIDGET:known-2", "name": "known-2", "label": "Known 2", "type": "T2", "status": "ACTIVE"},
    {"_id": "WIDGET:known-3", "name": "known-3", "label": "Known 3", "type": "T1", "status": "INACTIVE"},
]


@pytest.fixture
def settings() -> StoreSettings:
    """Settings from the environment with a unique database name."""
    return StoreSettings(database=f"couchdao-e2e-{uuid.uuid4().hex[:8]}")


@pytest_asyncio.fixture
async def store(settings: StoreSettings) -> AsyncGenerator[CouchStore, None]:
    """Fresh partitioned database with the WIDGET views and known widgets."""
    async with CouchStore.from_settings(settings) as store:
        await store.create_database()
        try:
            await store.put_design("WIDGET", WIDGET_VIEWS)
            for doc in KNOWN_WIDGETS:
                await store.insert(touch(dict(doc), "admin"))
            yield store
        finally:
            await store.delete_database()
