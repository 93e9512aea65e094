"""
Base protocol and helpers for the embedded key/value store.

This module defines the KeyValueStore protocol that the SQLite adapter and
the in-memory fake both implement, the value codec, and id generation.

Invariants:
    - Keys are strings ordered lexicographically by code point
    - Values are JSON documents; encoding is deterministic (sorted keys)
    - get_range is half-open: start <= key < end
    - get_range materializes its result, so callers may write while iterating

How to change safely:
    - Protocol changes require updating both implementations
    - Never change the value encoding without a migrate-on-read path
"""

from __future__ import annotations

import json
import secrets
import string
import time
from abc import abstractmethod
from collections.abc import Iterator
from typing import Any, Protocol, runtime_checkable

_ID_ALPHABET = string.ascii_lowercase + string.digits

MAIN_STORE = "main"


def encode_value(value: Any) -> str:
    """Encode a record for storage."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def decode_value(raw: str | None) -> Any:
    """Decode a stored record, None stays None."""
    if raw is None:
        return None
    return json.loads(raw)


def generate_id() -> str:
    """Generate a unique record id.

    Ids are prefixed with the creation time in milliseconds so that keys
    built from them sort roughly by creation.
    """
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{int(time.time() * 1000)}-{suffix}"


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for ordered key/value stores.

    Concurrency contract:
        - Many concurrent readers, a bounded number of concurrent writers
        - Each put/remove is atomic for its single key
        - There are no multi-key transactions

    Example:
        >>> store = InMemoryKeyValueStore()
        >>> store.put("program:1", {"id": "1"})
        >>> list(store.get_range("program:", "program:\\xff"))
        [('program:1', {'id': '1'})]
    """

    name: str

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the decoded value for key, or None."""
        ...

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Write value under key, replacing any existing value."""
        ...

    @abstractmethod
    def remove(self, key: str) -> bool:
        """Delete key. Returns True if it existed."""
        ...

    @abstractmethod
    def get_range(self, start: str, end: str) -> Iterator[tuple[str, Any]]:
        """Yield (key, value) pairs with start <= key < end in key order."""
        ...

    @abstractmethod
    def named(self, name: str) -> KeyValueStore:
        """Return a view of a named sub-store sharing this handle."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the underlying handle."""
        ...

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the handle is usable."""
        ...
