"""
Shared plumbing for repositories over the ordered key/value store.

Every repository is a thin layer that:
- builds keys with the keyspace helpers
- decodes records through the model's decode() and persists the result
  when defaults had to be filled (migrate-on-read)
- resolves secondary index pointers to primary records

Invariants:
    - Index entries are written before the primary on create
    - The primary is removed before its index entries on delete
    - A pointer whose primary is missing is skipped and pruned on read
    - Repositories never open or close the store

How to change safely:
    - Keep the write ordering above; indexed reads rely on it
    - Log repairs, never raise them to callers
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import Any, Generic, TypeVar

from ..config import DEFAULT_ACADEMY_ID
from ..keyspace import prefix_range
from ..models import Record, utc_now_iso
from ..storage.base import KeyValueStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=Record)


class BaseRepository(Generic[M]):
    """Base class for repositories of one record type.

    Attributes:
        model: Record class stored under this repository's keys
        store_name: Named sub-store holding the records
    """

    model: type[M]
    store_name: str | None = None

    def __init__(self, store: KeyValueStore, default_academy_id: str = DEFAULT_ACADEMY_ID) -> None:
        self._store = store.named(self.store_name) if self.store_name else store
        self.default_academy_id = default_academy_id

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # Primary records

    def _decode(self, key: str, raw: Any) -> M | None:
        """Decode a stored value, persisting it if defaults were filled."""
        if not isinstance(raw, dict):
            logger.warning(f"Ignoring malformed record at {key}", extra={"key": key})
            return None
        record, changed = self.model.decode(raw, self.default_academy_id)
        if changed:
            self._store.put(key, record.to_dict())
            logger.info(
                f"Migrated {self.model.__name__} record on read",
                extra={"key": key},
            )
        return record

    def _load(self, key: str) -> M | None:
        raw = self._store.get(key)
        if raw is None:
            return None
        return self._decode(key, raw)

    def _save(self, key: str, record: M) -> M:
        self._store.put(key, record.to_dict())
        return record

    def _remove(self, key: str) -> bool:
        return self._store.remove(key)

    def _scan_prefix(self, prefix: str) -> Iterator[tuple[str, M]]:
        """Decoded records for every key starting with prefix, in key order."""
        start, end = prefix_range(prefix)
        for key, raw in self._store.get_range(start, end):
            record = self._decode(key, raw)
            if record is not None:
                yield key, record

    # Secondary indexes

    def _scan_pointers(self, prefix: str) -> list[tuple[str, Any]]:
        start, end = prefix_range(prefix)
        return list(self._store.get_range(start, end))

    def _scan_index(
        self,
        prefix: str,
        primary_key_for: Callable[[str, Any], str],
    ) -> list[M]:
        """Resolve every pointer under an index prefix to its primary record.

        Args:
            prefix: Index scan prefix
            primary_key_for: Maps (index key, pointer value) to a primary key

        Returns:
            Records in index key order. Dangling pointers are pruned.
        """
        records: list[M] = []
        for index_key, pointer in self._scan_pointers(prefix):
            key = primary_key_for(index_key, pointer)
            record = self._load(key)
            if record is None:
                self._store.remove(index_key)
                logger.warning(
                    f"Pruned dangling index entry {index_key}",
                    extra={"index_key": index_key, "primary_key": key},
                )
                continue
            records.append(record)
        return records

    def _put_indexes(self, entries: Iterable[tuple[str, Any]]) -> None:
        for key, pointer in entries:
            self._store.put(key, pointer)

    def _remove_keys(self, keys: Iterable[str]) -> int:
        return sum(1 for key in keys if self._store.remove(key))

    @staticmethod
    def _now() -> str:
        return utc_now_iso()


def apply_changes(record: Any, changes: dict[str, Any], protected: Iterable[str]) -> None:
    """Copy known, non-protected fields from changes onto record."""
    blocked = set(protected)
    for name, value in changes.items():
        if name in blocked or not hasattr(record, name):
            continue
        setattr(record, name, value)
