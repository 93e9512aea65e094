"""
Storage engine adapter for the academy store.

This module owns the process-wide handle to the embedded ordered key/value
store and provides:
- SQLite-backed store (production)
- In-memory store (testing and tooling)

Invariants:
    - open_store() is idempotent per process: one shared handle
    - close_store() releases the handle and clears the singleton, so a
      later open_store() creates a fresh one (required by reset tooling)
    - Failure to acquire the backing store is fatal; there is no retry
    - Repositories receive the handle by injection and never open it

How to change safely:
    - New backends must implement the KeyValueStore protocol
    - Keep open/close symmetric; reset tooling depends on it
"""

from __future__ import annotations

import logging
import threading

from ..config import StorageConfig
from .base import MAIN_STORE, KeyValueStore, decode_value, encode_value, generate_id
from .memory import InMemoryKeyValueStore
from .sqlite import SqliteEnvironment, SqliteKeyValueStore

logger = logging.getLogger(__name__)

_store: KeyValueStore | None = None
_store_lock = threading.Lock()


def create_store(config: StorageConfig) -> SqliteKeyValueStore:
    """Open a new SQLite-backed store from configuration.

    Raises:
        StoreUnavailableError: If the store cannot be acquired
    """
    return SqliteKeyValueStore.open(
        data_dir=config.data_dir,
        map_size=config.map_size,
        max_readers=config.max_readers,
        max_stores=config.max_stores,
        max_writers=config.max_writers,
        wal_mode=config.wal_mode,
        busy_timeout_ms=config.busy_timeout_ms,
    )


def open_store(config: StorageConfig) -> KeyValueStore:
    """Return the process-wide store handle, opening it on first use."""
    global _store
    with _store_lock:
        if _store is None or not _store.is_open:
            _store = create_store(config)
            logger.info(
                f"Store initialized at {config.data_dir} "
                f"(map_size: {config.map_size // (1024 * 1024)}MB, "
                f"max_readers: {config.max_readers}, max_stores: {config.max_stores}, "
                f"profile: {config.profile.value})"
            )
        return _store


def close_store() -> None:
    """Close the process-wide handle, if any, and forget it."""
    global _store
    with _store_lock:
        if _store is not None:
            _store.close()
            _store = None


__all__ = [
    "KeyValueStore",
    "MAIN_STORE",
    "InMemoryKeyValueStore",
    "SqliteEnvironment",
    "SqliteKeyValueStore",
    "create_store",
    "open_store",
    "close_store",
    "encode_value",
    "decode_value",
    "generate_id",
]
