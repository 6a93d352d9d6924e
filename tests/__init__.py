"""
couchdao Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: DAO over the in-memory store
- e2e/: End-to-end tests against a running CouchDB
"""
