"""
In-memory storage backend.

Dict-based implementation of the Store interface, used for testing and for
running a syncer with `--db :memory:`.
"""

from __future__ import annotations

from typing import Optional

from headsync.common.types import Entry, Height
from headsync.storage.store import Store


class MemoryStore(Store):
    """Dict-based in-memory store."""

    def __init__(self) -> None:
        self._entries: dict[int, Entry] = {}
        self._max_height: Optional[int] = None

    async def max_synced_height(self) -> Optional[Height]:
        return self._max_height

    async def insert_if_absent(self, height: Height, entry: Entry) -> int:
        if height in self._entries:
            return 0
        self._entries[height] = entry
        if self._max_height is None or height > self._max_height:
            self._max_height = height
        return 1

    async def get_entry(self, height: Height) -> Optional[Entry]:
        return self._entries.get(height)

    async def count(self) -> int:
        return len(self._entries)

    def heights(self) -> list[int]:
        """All stored heights in ascending order."""
        return sorted(self._entries)
