"""
Sync-to-head engine: keeps a store consistent with a node's head.

Each pass:
  1. Resolve the start height (explicit override, else store cursor + 1, else 0)
  2. Ask the node for its current head H
  3. Fetch and store every height in [start, H], strictly in order

Existing entries are never updated: inserts are idempotent, so a pass that
fails half-way is resumed by the next one from the store's cursor.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from headsync.common.config import DEFAULT_INTERVAL
from headsync.common.errors import SyncInterrupted
from headsync.common.types import Height
from headsync.node.client import NodeClient
from headsync.storage.store import Store
from headsync.sync.observer import LoggingObserver, SyncObserver

logger = logging.getLogger(__name__)


@dataclass
class PassOutcome:
    """Result of one pass: the synced head, or the error that aborted it."""
    start: Optional[int] = None
    head: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Syncer:
    """Backfills a Store from a NodeClient, one height at a time."""

    def __init__(
        self,
        name: str,
        node: NodeClient,
        store: Store,
        observer: Optional[SyncObserver] = None,
    ) -> None:
        self.name = name
        self.node = node
        self.store = store
        self.observer = observer or LoggingObserver()

    async def resolve_start_height(self, start_height: Optional[Height] = None) -> Height:
        """Explicit start wins; otherwise resume after the store's highest entry."""
        if start_height is not None:
            return start_height
        cursor = await self.store.max_synced_height()
        return 0 if cursor is None else cursor + 1

    async def bump(
        self,
        start_height: Optional[Height] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> Height:
        """Run one pass and return the node head it synced up to.

        Raises TransportError, StorageError, NothingAtHeight or PendingBlock
        on failure, and SyncInterrupted if `stop_event` is set between two
        heights. Heights stored before the failure stay committed.
        """
        start = await self.resolve_start_height(start_height)
        head = await self.node.current_head()
        if start == head:
            return head
        if start > head:
            logger.debug("%s: store is ahead of node (next %d, head %d)", self.name, start, head)
            return head

        self.observer.on_pass_started(self.name, start, head)
        for height in range(start, head + 1):
            if stop_event is not None and stop_event.is_set():
                raise SyncInterrupted(height)
            entry = await self.node.entry_at(height)
            await self.store.insert_if_absent(height, entry)
            self.observer.on_height_synced(self.name, height)

        return head

    async def run_pass(
        self,
        start_height: Optional[Height] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> PassOutcome:
        """Run one pass, catching and reporting any failure."""
        try:
            head = await self.bump(start_height, stop_event)
        except Exception as e:
            self.observer.on_pass_failed(self.name, e)
            return PassOutcome(start=start_height, error=e)
        self.observer.on_pass_succeeded(self.name, head)
        return PassOutcome(start=start_height, head=head)

    async def sync_to_head(
        self,
        start_height: Optional[Height] = None,
        interval: float = DEFAULT_INTERVAL,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Keep the store synced with the node until `stop_event` is set.

        The first pass starts at `start_height` if given; later passes
        resume from the store's highest entry.
        """
        from headsync.sync.scheduler import SchedulerLoop

        loop = SchedulerLoop(self, interval, start_height=start_height, stop_event=stop_event)
        await loop.run()
