"""
SQLite-backed ordered key/value store.

One SQLite file holds every named sub-store as its own table:

    kv_<name>:
        - key TEXT PRIMARY KEY (binary collation, so lexicographic order)
        - value TEXT (JSON)
        - WITHOUT ROWID

The table is used purely as an ordered map; no relational features
(foreign keys, joins, multi-statement transactions) are relied upon.

Invariants:
    - One environment per data directory, shared by all sub-store views
    - Capacity is enforced with max_page_count on every connection
    - At most max_readers reads run concurrently; a read that cannot get a
      slot within the busy timeout raises ReaderBudgetExceededError
    - At most max_writers writes run concurrently (blocking)

How to change safely:
    - Keep the value column as JSON text so stores stay inspectable
    - Test capacity and reader exhaustion paths after changing pragmas
"""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..errors import (
    ReaderBudgetExceededError,
    StoreCapacityError,
    StoreClosedError,
    StoreError,
    StoreUnavailableError,
    SubStoreLimitError,
)
from .base import MAIN_STORE, decode_value, encode_value

logger = logging.getLogger(__name__)

_STORE_NAME = re.compile(r"^[a-z][a-z0-9_]*$")


class SqliteEnvironment:
    """Owner of the on-disk store and its resource budgets.

    Attributes:
        data_dir: Directory containing the store file
        map_size: Capacity in bytes
        max_readers: Concurrent reader slots
        max_stores: Maximum named sub-stores
        max_writers: Concurrent writer slots

    Thread safety:
        Each operation opens its own connection; SQLite handles concurrent
        access via WAL mode. Budgets are enforced with semaphores.
    """

    DB_FILENAME = "academy.db"

    def __init__(
        self,
        data_dir: str,
        map_size: int,
        max_readers: int,
        max_stores: int,
        max_writers: int = 1,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.map_size = map_size
        self.max_readers = max_readers
        self.max_stores = max_stores
        self.max_writers = max_writers
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

        self._readers = threading.BoundedSemaphore(max_readers)
        self._writers = threading.BoundedSemaphore(max_writers)
        self._tables: set[str] = set()
        self._tables_lock = threading.Lock()
        self._max_pages = 0
        self._open = False

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.DB_FILENAME

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        """Create the directory if needed and verify the store is writable.

        Raises:
            StoreUnavailableError: If the store cannot be acquired
        """
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,
            )
            try:
                page_size = conn.execute("PRAGMA page_size").fetchone()[0]
                self._max_pages = max(1, self.map_size // page_size)
                if self.wal_mode:
                    conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("BEGIN IMMEDIATE")
                conn.execute("COMMIT")
            finally:
                conn.close()
        except (OSError, sqlite3.Error) as e:
            logger.error(f"Failed to open store at {self.db_path}: {e}")
            raise StoreUnavailableError(
                f"Cannot acquire store at {self.db_path}: {e}", path=str(self.db_path)
            ) from e

        self._open = True
        logger.info(
            f"Store opened at {self.db_path}",
            extra={
                "map_size": self.map_size,
                "max_readers": self.max_readers,
                "max_stores": self.max_stores,
                "max_writers": self.max_writers,
            },
        )

    def close(self) -> None:
        if not self._open:
            return
        self._open = False
        with self._tables_lock:
            self._tables.clear()
        logger.info(f"Store closed at {self.db_path}")

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        if not self._open:
            raise StoreClosedError()

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,
        )
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute(f"PRAGMA max_page_count = {self._max_pages}")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def reader(self) -> Iterator[sqlite3.Connection]:
        """Run a read inside one of the reader slots."""
        if not self._readers.acquire(timeout=self.busy_timeout_ms / 1000.0):
            raise ReaderBudgetExceededError(self.max_readers)
        try:
            with self._connection() as conn:
                yield conn
        except sqlite3.Error as e:
            raise StoreError(f"Read failed: {e}") from e
        finally:
            self._readers.release()

    @contextmanager
    def writer(self) -> Iterator[sqlite3.Connection]:
        """Run a write inside one of the writer slots."""
        with self._writers:
            try:
                with self._connection() as conn:
                    yield conn
            except sqlite3.OperationalError as e:
                if "full" in str(e).lower():
                    raise StoreCapacityError(
                        f"Store capacity exhausted: {e}", map_size=self.map_size
                    ) from e
                raise StoreError(f"Write failed: {e}") from e
            except sqlite3.Error as e:
                raise StoreError(f"Write failed: {e}") from e

    def ensure_table(self, name: str) -> str:
        """Create the table backing a named sub-store.

        Returns:
            Table name

        Raises:
            ValueError: If the name is not a valid store name
            SubStoreLimitError: If max_stores would be exceeded
        """
        if not _STORE_NAME.match(name):
            raise ValueError(f"Invalid sub-store name: {name!r}")

        table = f"kv_{name}"
        with self._tables_lock:
            if table in self._tables:
                return table
            if len(self._tables) >= self.max_stores:
                raise SubStoreLimitError(name, self.max_stores)
            with self.writer() as conn:
                conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} ("
                    "key TEXT PRIMARY KEY COLLATE BINARY, "
                    "value TEXT NOT NULL"
                    ") WITHOUT ROWID"
                )
            self._tables.add(table)
        return table


class SqliteKeyValueStore:
    """KeyValueStore view over one table of a SqliteEnvironment.

    Example:
        >>> store = SqliteKeyValueStore.open("/var/lib/academy", map_size=64 << 20,
        ...                                  max_readers=64, max_stores=4)
        >>> store.put("program:1", {"id": "1", "name": "U10"})
        >>> store.get("program:1")["name"]
        'U10'
    """

    def __init__(self, env: SqliteEnvironment, name: str = MAIN_STORE) -> None:
        self._env = env
        self.name = name
        self._table = env.ensure_table(name)

    @classmethod
    def open(
        cls,
        data_dir: str,
        map_size: int,
        max_readers: int,
        max_stores: int,
        max_writers: int = 1,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> SqliteKeyValueStore:
        """Open an environment and return its main store."""
        env = SqliteEnvironment(
            data_dir=data_dir,
            map_size=map_size,
            max_readers=max_readers,
            max_stores=max_stores,
            max_writers=max_writers,
            wal_mode=wal_mode,
            busy_timeout_ms=busy_timeout_ms,
        )
        env.open()
        return cls(env)

    @property
    def environment(self) -> SqliteEnvironment:
        return self._env

    @property
    def is_open(self) -> bool:
        return self._env.is_open

    def get(self, key: str) -> Any | None:
        with self._env.reader() as conn:
            row = conn.execute(
                f"SELECT value FROM {self._table} WHERE key = ?", (key,)
            ).fetchone()
        return decode_value(row[0]) if row else None

    def put(self, key: str, value: Any) -> None:
        encoded = encode_value(value)
        with self._env.writer() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO {self._table} (key, value) VALUES (?, ?)",
                (key, encoded),
            )

    def remove(self, key: str) -> bool:
        with self._env.writer() as conn:
            cursor = conn.execute(f"DELETE FROM {self._table} WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def get_range(self, start: str, end: str) -> Iterator[tuple[str, Any]]:
        with self._env.reader() as conn:
            rows = conn.execute(
                f"SELECT key, value FROM {self._table} "
                "WHERE key >= ? AND key < ? ORDER BY key",
                (start, end),
            ).fetchall()
        return iter([(key, decode_value(value)) for key, value in rows])

    def named(self, name: str) -> SqliteKeyValueStore:
        if name == self.name:
            return self
        return SqliteKeyValueStore(self._env, name)

    def close(self) -> None:
        self._env.close()
