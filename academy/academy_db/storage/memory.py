"""
In-memory key/value store for testing.

Implements the same get/put/remove/range contract as the SQLite adapter,
including named sub-stores and their limit, so repository tests run
without touching disk.

Invariants:
    - All data is lost when the process exits or close() is called
    - Values are stored encoded, so callers never alias stored records
    - Range scans see keys in the same order as the SQLite adapter

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the KeyValueStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import bisect
import logging
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from ..errors import StoreClosedError, SubStoreLimitError
from .base import MAIN_STORE, decode_value, encode_value

logger = logging.getLogger(__name__)


@dataclass
class _Table:
    keys: list[str] = field(default_factory=list)
    values: dict[str, str] = field(default_factory=dict)


@dataclass
class _Shared:
    tables: dict[str, _Table] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock)
    max_stores: int = 16
    open: bool = True
    puts: int = 0
    removes: int = 0


class InMemoryKeyValueStore:
    """In-memory implementation of KeyValueStore.

    Attributes:
        name: Sub-store name

    Example:
        >>> store = InMemoryKeyValueStore()
        >>> store.put("course:1", {"id": "1"})
        >>> store.get("course:1")
        {'id': '1'}
    """

    def __init__(self, max_stores: int = 16, name: str = MAIN_STORE, _shared: _Shared | None = None) -> None:
        self._shared = _shared or _Shared(max_stores=max_stores)
        self.name = name
        with self._shared.lock:
            if name not in self._shared.tables:
                if len(self._shared.tables) >= self._shared.max_stores:
                    raise SubStoreLimitError(name, self._shared.max_stores)
                self._shared.tables[name] = _Table()
            self._table = self._shared.tables[name]

    @property
    def is_open(self) -> bool:
        return self._shared.open

    @property
    def write_count(self) -> int:
        """Number of puts and removes issued across all sub-stores."""
        return self._shared.puts + self._shared.removes

    def _check_open(self) -> None:
        if not self._shared.open:
            raise StoreClosedError()

    def get(self, key: str) -> Any | None:
        self._check_open()
        with self._shared.lock:
            raw = self._table.values.get(key)
        return decode_value(raw)

    def put(self, key: str, value: Any) -> None:
        self._check_open()
        encoded = encode_value(value)
        with self._shared.lock:
            if key not in self._table.values:
                bisect.insort(self._table.keys, key)
            self._table.values[key] = encoded
            self._shared.puts += 1

    def remove(self, key: str) -> bool:
        self._check_open()
        with self._shared.lock:
            self._shared.removes += 1
            if key not in self._table.values:
                return False
            del self._table.values[key]
            idx = bisect.bisect_left(self._table.keys, key)
            del self._table.keys[idx]
            return True

    def get_range(self, start: str, end: str) -> Iterator[tuple[str, Any]]:
        self._check_open()
        with self._shared.lock:
            lo = bisect.bisect_left(self._table.keys, start)
            hi = bisect.bisect_left(self._table.keys, end)
            snapshot = [(k, self._table.values[k]) for k in self._table.keys[lo:hi]]
        return iter([(k, decode_value(v)) for k, v in snapshot])

    def named(self, name: str) -> InMemoryKeyValueStore:
        if name == self.name:
            return self
        return InMemoryKeyValueStore(name=name, _shared=self._shared)

    def close(self) -> None:
        """Close and clear all data."""
        with self._shared.lock:
            self._shared.open = False
            self._shared.tables.clear()
        logger.debug("InMemoryKeyValueStore closed")

    # Testing helpers

    def keys(self, prefix: str = "") -> list[str]:
        """All keys in this sub-store starting with prefix."""
        return [k for k, _ in self.get_range(prefix, prefix + "\xff")]

    def put_raw(self, key: str, value: Any) -> None:
        """Store a value without counting it as a write (seeding legacy shapes)."""
        with self._shared.lock:
            if key not in self._table.values:
                bisect.insort(self._table.keys, key)
            self._table.values[key] = encode_value(value)
