"""
headsync_ namespace JSON-RPC API handlers.

Read-only view over the running syncers: their status counters and the
entries they have committed. Entries are read through Store.get_entry only,
never from a syncer's in-flight state.
"""

from __future__ import annotations

import logging
from typing import Optional

from headsync.common.types import Entry
from headsync.rpc.server import (
    RPCServer,
    RPCError,
    INVALID_PARAMS,
    bytes_to_hex,
    int_to_hex,
    parse_height_param,
)
from headsync.sync.observer import MetricsObserver
from headsync.sync.scheduler import SchedulerLoop

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def _format_entry(entry: Entry) -> dict:
    """Format a stored entry for JSON-RPC response."""
    return {
        "number": int_to_hex(entry.height),
        "hash": bytes_to_hex(entry.hash),
        "parentHash": bytes_to_hex(entry.parent_hash),
        "timestamp": int_to_hex(entry.timestamp),
        "transactions": [
            {
                "hash": bytes_to_hex(tx.hash),
                "from": bytes_to_hex(tx.sender),
                "to": bytes_to_hex(tx.to) if tx.to is not None else None,
                "input": bytes_to_hex(tx.input),
                "value": int_to_hex(tx.value),
                "nonce": int_to_hex(tx.nonce),
            }
            for tx in entry.transactions
        ],
    }


def register_sync_api(
    rpc: RPCServer,
    loops: list[SchedulerLoop],
    metrics: Optional[MetricsObserver] = None,
) -> None:
    """Register all headsync_ namespace methods."""
    by_name = {loop.name: loop for loop in loops}

    if metrics is not None:
        rpc.set_metrics_provider(metrics.metrics)

    def _loop(name: str) -> SchedulerLoop:
        if not isinstance(name, str) or name not in by_name:
            raise RPCError(INVALID_PARAMS, f"unknown syncer: {name!r}")
        return by_name[name]

    @rpc.method("headsync_syncing")
    async def syncing() -> list[dict]:
        result = []
        for loop in loops:
            item = {
                "name": loop.name,
                "running": loop.running,
                "ticks": loop.ticks,
                "syncedHeight": None,
            }
            cursor = await loop.syncer.store.max_synced_height()
            if cursor is not None:
                item["syncedHeight"] = int_to_hex(cursor)
            if metrics is not None:
                item["status"] = metrics.status(loop.name).to_json()
            result.append(item)
        return result

    @rpc.method("headsync_syncedHeight")
    async def synced_height(name: str) -> Optional[str]:
        cursor = await _loop(name).syncer.store.max_synced_height()
        return int_to_hex(cursor) if cursor is not None else None

    @rpc.method("headsync_getEntryByHeight")
    async def get_entry_by_height(name: str, height: int | str) -> Optional[dict]:
        store = _loop(name).syncer.store
        entry = await store.get_entry(parse_height_param(height))
        if entry is None:
            return None
        return _format_entry(entry)
