"""
Store interface: the destination side of the sync engine.

Defines the contract for persisting entries by height. Inserts are
idempotent: writing a height that already exists is a no-op that reports
zero affected rows, so a partially completed pass can be safely retried.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from headsync.common.types import Entry, Height


class Store(ABC):
    """Abstract entry store.

    Implementations can be in-memory (testing) or SQLite.
    """

    # -----------------------------------------------------------------
    # Sync cursor
    # -----------------------------------------------------------------

    @abstractmethod
    async def max_synced_height(self) -> Optional[Height]:
        """Highest stored height, or None if the store is empty."""
        ...

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    @abstractmethod
    async def insert_if_absent(self, height: Height, entry: Entry) -> int:
        """Insert `entry` at `height` unless one exists. Returns affected rows (0 or 1)."""
        ...

    # -----------------------------------------------------------------
    # Reads (downstream consumers)
    # -----------------------------------------------------------------

    @abstractmethod
    async def get_entry(self, height: Height) -> Optional[Entry]:
        """Get the committed entry at `height`, or None."""
        ...

    @abstractmethod
    async def count(self) -> int:
        """Number of stored entries."""
        ...

    def close(self) -> None:
        """Release any held resources."""
        return None
