"""
SQLite storage backend.

Entries are kept in one table per logical store, keyed by height. The full
entry is stored as an RLP payload next to a few queryable columns.

Connections come from a small pool and are checked out per operation, so a
long backfill never holds a connection between writes and other readers of
the same database are not starved. Blocking sqlite3 calls run in worker
threads to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import queue
import re
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from headsync.common.config import DEFAULT_POOL_SIZE, DEFAULT_TABLE
from headsync.common.errors import ConfigError, StorageError
from headsync.common.types import Entry, Height
from headsync.storage.store import Store

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_memory_ids = itertools.count()

CHECKOUT_TIMEOUT = 30.0  # seconds to wait for a free pooled connection


# ---------------------------------------------------------------------------
# Connection pool
# ---------------------------------------------------------------------------

class ConnectionPool:
    """Fixed-size pool of sqlite3 connections with scoped checkout."""

    def __init__(self, db_path: str, size: int = DEFAULT_POOL_SIZE) -> None:
        if size < 1:
            raise ConfigError(f"pool size must be >= 1, got {size}")
        self.db_path = db_path
        self.size = size
        if db_path == ":memory:":
            # A named shared-cache database so every pooled connection sees the same data
            self._target = f"file:headsync-mem-{next(_memory_ids)}?mode=memory&cache=shared"
            self._uri = True
        else:
            self._target = db_path
            self._uri = False
        self._idle: queue.Queue[sqlite3.Connection] = queue.Queue(maxsize=size)
        self._all: list[sqlite3.Connection] = []
        self._closed = False
        try:
            for _ in range(size):
                conn = sqlite3.connect(
                    self._target, uri=self._uri, check_same_thread=False, timeout=CHECKOUT_TIMEOUT
                )
                conn.row_factory = sqlite3.Row
                self._all.append(conn)
                self._idle.put(conn)
        except sqlite3.Error as e:
            self.close()
            raise StorageError(f"cannot open database {db_path}: {e}") from e

    @contextmanager
    def connection(self, timeout: float = CHECKOUT_TIMEOUT) -> Iterator[sqlite3.Connection]:
        """Check out a connection for the duration of the block."""
        if self._closed:
            raise StorageError("connection pool is closed")
        try:
            conn = self._idle.get(timeout=timeout)
        except queue.Empty:
            raise StorageError(f"no database connection available after {timeout}s") from None
        try:
            yield conn
        finally:
            self._idle.put(conn)

    @property
    def available(self) -> int:
        return self._idle.qsize()

    def close(self) -> None:
        self._closed = True
        for conn in self._all:
            conn.close()
        self._all.clear()


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class SQLiteStore(Store):
    """SQLite-based persistent entry store."""

    def __init__(
        self,
        db_path: str = ":memory:",
        table: str = DEFAULT_TABLE,
        pool_size: int = DEFAULT_POOL_SIZE,
    ) -> None:
        if not _IDENTIFIER.match(table):
            raise ConfigError(f"invalid table name {table!r}")
        self.db_path = db_path
        self.table = table
        self.pool = ConnectionPool(db_path, pool_size)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the entries table."""
        with self._checkout() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    height INTEGER PRIMARY KEY,
                    hash BLOB NOT NULL,
                    parent_hash BLOB NOT NULL,
                    timestamp INTEGER NOT NULL,
                    tx_count INTEGER NOT NULL,
                    payload BLOB NOT NULL
                )
            """)
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{self.table}_hash ON {self.table}(hash)
            """)

    @contextmanager
    def _checkout(self) -> Iterator[sqlite3.Connection]:
        """Pooled connection wrapped in a transaction; sqlite errors become StorageError."""
        try:
            with self.pool.connection() as conn:
                with conn:
                    yield conn
        except sqlite3.Error as e:
            raise StorageError(f"{self.table}: {e}") from e

    # -----------------------------------------------------------------
    # Blocking operations (run in worker threads)
    # -----------------------------------------------------------------

    def _max_height(self) -> Optional[int]:
        with self._checkout() as conn:
            row = conn.execute(f"SELECT MAX(height) FROM {self.table}").fetchone()
        return row[0]

    def _insert(self, height: int, entry: Entry) -> int:
        with self._checkout() as conn:
            cursor = conn.execute(
                f"""
                INSERT OR IGNORE INTO {self.table}
                    (height, hash, parent_hash, timestamp, tx_count, payload)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    height,
                    entry.hash,
                    entry.parent_hash,
                    entry.timestamp,
                    len(entry.transactions),
                    entry.to_rlp(),
                ),
            )
            return cursor.rowcount

    def _get(self, height: int) -> Optional[Entry]:
        with self._checkout() as conn:
            row = conn.execute(
                f"SELECT payload FROM {self.table} WHERE height = ?", (height,)
            ).fetchone()
        if row is None:
            return None
        return Entry.from_rlp(row["payload"])

    def _count(self) -> int:
        with self._checkout() as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()
        return row[0]

    # -----------------------------------------------------------------
    # Store interface
    # -----------------------------------------------------------------

    async def max_synced_height(self) -> Optional[Height]:
        return await asyncio.to_thread(self._max_height)

    async def insert_if_absent(self, height: Height, entry: Entry) -> int:
        affected = await asyncio.to_thread(self._insert, height, entry)
        if affected == 0:
            logger.debug("%s: entry at height %d already stored", self.table, height)
        return affected

    async def get_entry(self, height: Height) -> Optional[Entry]:
        return await asyncio.to_thread(self._get, height)

    async def count(self) -> int:
        return await asyncio.to_thread(self._count)

    def close(self) -> None:
        self.pool.close()
