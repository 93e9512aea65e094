"""
Academy store test suite.

This package contains:
- unit/: Unit tests against the in-memory store (no disk)
- integration/: SQLite-backed store, the FastAPI app and the admin CLI
"""
