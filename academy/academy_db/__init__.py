"""
Academy store - multi-tenant persistence for sports academies.

This package implements the storage substrate of an academy management
application:
- An embedded ordered key/value store (SQLite) with named sub-stores
- A key-space convention with hand-maintained secondary indexes
- Repositories with migrate-on-read and cascading deletes
- Academy (tenant) resolution from a signed selection cookie
- A progression ledger of coach notes and points
- Action functions, HTTP glue (FastAPI) and an admin CLI

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │  HTTP/CLI   │────▶│   Actions   │────▶│  Repositories   │
    │  (FastAPI)  │     │ (+ tenancy) │     │ (+ cascades)    │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                                                     ▼
                        ┌─────────────────────────────────────────┐
                        │   Ordered KV store (SQLite, sub-stores) │
                        └─────────────────────────────────────────┘

Invariants:
    - Every tenant-owned record carries academy_id
    - Index entries are written before their primary record and removed
      after it; dangling index entries are skipped on read
    - Records read in an older shape are upgraded and rewritten once
    - points_total == dropped_points + sum of retained note deltas

How to change safely:
    - New record fields need a read default in the model
    - Key shapes are persistent; never rename an index without a migration
"""

from ._version import __version__

__all__ = ["__version__"]
