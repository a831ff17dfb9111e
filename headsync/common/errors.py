"""
Error taxonomy for the sync engine.

Every failure a pass can hit derives from HeadSyncError. Transport, storage
and source-consistency errors are transient: the scheduler logs them and
retries on the next tick. ConfigError is fatal and raised before any loop
starts.
"""

from __future__ import annotations


class HeadSyncError(Exception):
    """Base class for all sync engine errors."""


class TransportError(HeadSyncError):
    """Node unreachable or returned a malformed response."""


class StorageError(HeadSyncError):
    """Read or write against the store failed."""


class ConfigError(HeadSyncError):
    """Invalid configuration detected at startup."""


class SyncError(HeadSyncError):
    """The source is not consistent with the requested height."""

    def __init__(self, height: int, message: str) -> None:
        super().__init__(message)
        self.height = height


class NothingAtHeight(SyncError):
    """Block not found at height."""

    def __init__(self, height: int) -> None:
        super().__init__(height, f"nothing at height {height}")


class PendingBlock(SyncError):
    """The block at height is pending and must not be persisted."""

    def __init__(self, height: int) -> None:
        super().__init__(height, f"block at height {height} is pending")


class SyncInterrupted(HeadSyncError):
    """A pass stopped before starting `height` because a stop was requested."""

    def __init__(self, height: int) -> None:
        super().__init__(f"sync interrupted before height {height}")
        self.height = height


_KINDS: list[tuple[type[BaseException], str]] = [
    (TransportError, "transport"),
    (StorageError, "storage"),
    (NothingAtHeight, "nothing_at_height"),
    (PendingBlock, "pending_block"),
    (ConfigError, "config"),
    (SyncInterrupted, "interrupted"),
]


def classify(exc: BaseException) -> str:
    """Return the stable classification label used in logs and metrics."""
    for exc_type, kind in _KINDS:
        if isinstance(exc, exc_type):
            return kind
    return "unexpected"
