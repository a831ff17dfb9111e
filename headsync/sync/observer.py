"""
Observability hooks for the sync engine.

A Syncer reports pass outcomes and per-height progress to a SyncObserver.
LoggingObserver writes the classic sync log lines, MetricsObserver keeps
per-syncer counters for the /metrics endpoint and the status API.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from headsync.common.errors import classify

logger = logging.getLogger(__name__)


class SyncObserver:
    """No-op observer. Subclasses override the hooks they care about."""

    def on_pass_started(self, name: str, start: int, head: int) -> None:
        pass

    def on_height_synced(self, name: str, height: int) -> None:
        pass

    def on_pass_succeeded(self, name: str, head: int) -> None:
        pass

    def on_pass_failed(self, name: str, error: BaseException) -> None:
        pass


class LoggingObserver(SyncObserver):
    def on_pass_started(self, name: str, start: int, head: int) -> None:
        logger.info("%s: Bumping database from height %d to %d", name, start, head)

    def on_height_synced(self, name: str, height: int) -> None:
        logger.info("%s: Saved entry at height %d", name, height)

    def on_pass_succeeded(self, name: str, head: int) -> None:
        logger.info("%s: Database synced up to node. Head is %d", name, head)

    def on_pass_failed(self, name: str, error: BaseException) -> None:
        kind = classify(error)
        if kind == "interrupted":
            logger.info("%s: %s", name, error)
        elif kind == "unexpected":
            logger.error("%s: Failed to bump up to head: %r", name, error, exc_info=error)
        else:
            logger.warning("%s: Failed to bump up to head (%s): %s", name, kind, error)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

@dataclass
class SyncStatus:
    """Per-syncer counters and last outcome."""
    passes: int = 0
    successes: int = 0
    failures: dict[str, int] = field(default_factory=dict)
    heights_synced: int = 0
    head: Optional[int] = None
    last_synced_height: Optional[int] = None
    last_error: Optional[str] = None
    last_pass_at: Optional[float] = None

    @property
    def failure_count(self) -> int:
        return sum(self.failures.values())

    def to_json(self) -> dict:
        return {
            "passes": self.passes,
            "successes": self.successes,
            "failures": dict(self.failures),
            "heightsSynced": self.heights_synced,
            "head": self.head,
            "lastSyncedHeight": self.last_synced_height,
            "lastError": self.last_error,
            "lastPassAt": self.last_pass_at,
        }


class MetricsObserver(SyncObserver):
    """Collects SyncStatus per syncer name."""

    def __init__(self) -> None:
        self.statuses: dict[str, SyncStatus] = {}

    def status(self, name: str) -> SyncStatus:
        if name not in self.statuses:
            self.statuses[name] = SyncStatus()
        return self.statuses[name]

    def on_height_synced(self, name: str, height: int) -> None:
        status = self.status(name)
        status.heights_synced += 1
        status.last_synced_height = height

    def on_pass_succeeded(self, name: str, head: int) -> None:
        status = self.status(name)
        status.passes += 1
        status.successes += 1
        status.head = head
        status.last_error = None
        status.last_pass_at = time.time()

    def on_pass_failed(self, name: str, error: BaseException) -> None:
        status = self.status(name)
        kind = classify(error)
        status.passes += 1
        status.failures[kind] = status.failures.get(kind, 0) + 1
        status.last_error = f"{kind}: {error}"
        status.last_pass_at = time.time()

    def metrics(self) -> dict[str, float | int]:
        """Flat metric map in Prometheus text naming."""
        result: dict[str, float | int] = {}
        for name, status in sorted(self.statuses.items()):
            label = f'{{syncer="{name}"}}'
            result[f"headsync_passes_total{label}"] = status.passes
            result[f"headsync_pass_failures_total{label}"] = status.failure_count
            result[f"headsync_heights_synced_total{label}"] = status.heights_synced
            if status.head is not None:
                result[f"headsync_head{label}"] = status.head
            if status.last_synced_height is not None:
                result[f"headsync_last_synced_height{label}"] = status.last_synced_height
            for kind, count in sorted(status.failures.items()):
                result[f'headsync_pass_failures_by_kind_total{{syncer="{name}",kind="{kind}"}}'] = count
        return result


class ObserverGroup(SyncObserver):
    """Forwards every hook to each member; a failing observer never aborts a pass."""

    def __init__(self, *observers: SyncObserver) -> None:
        self.observers = list(observers)

    def _dispatch(self, hook: str, *args) -> None:
        for observer in self.observers:
            try:
                getattr(observer, hook)(*args)
            except Exception:
                logger.exception("Observer %s.%s failed", type(observer).__name__, hook)

    def on_pass_started(self, name: str, start: int, head: int) -> None:
        self._dispatch("on_pass_started", name, start, head)

    def on_height_synced(self, name: str, height: int) -> None:
        self._dispatch("on_height_synced", name, height)

    def on_pass_succeeded(self, name: str, head: int) -> None:
        self._dispatch("on_pass_succeeded", name, head)

    def on_pass_failed(self, name: str, error: BaseException) -> None:
        self._dispatch("on_pass_failed", name, error)
