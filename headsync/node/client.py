"""
NodeClient interface: the source side of the sync engine.

The syncer only needs the node's current head and the entry stored at a
given height; transport details belong to implementations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from headsync.common.types import Entry, Height


class NodeClient(ABC):
    """Abstract height-indexed data source."""

    @abstractmethod
    async def current_head(self) -> Height:
        """Return the highest height the node reports.

        Raises TransportError.
        """
        ...

    @abstractmethod
    async def entry_at(self, height: Height) -> Entry:
        """Fetch the entry at `height`.

        Raises NothingAtHeight if the node has nothing there yet, PendingBlock
        if the data is not final, TransportError on network failure.
        """
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        return None
