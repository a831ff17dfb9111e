"""
Core sync types: Height, Entry, Transaction.

An Entry is the unit of data the engine copies from the node into the store:
one block, identified by its height. Entries support RLP serialization via
to_rlp_list() / from_rlp_list() and can be built from a JSON-RPC block object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import rlp
from eth_utils import big_endian_to_int, decode_hex, to_canonical_address, to_int


Height = int

ZERO_HASH = b"\x00" * 32


# ---------------------------------------------------------------------------
# JSON-RPC decoding helpers
# ---------------------------------------------------------------------------

def _quantity(value: Any) -> int:
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise ValueError(f"expected hex quantity, got {value!r}")
    return to_int(hexstr=value)


def _data(value: Optional[str]) -> bytes:
    if not value:
        return b""
    return decode_hex(value)


def _address(value: Optional[str]) -> Optional[bytes]:
    if value is None:
        return None
    return to_canonical_address(value)


def is_pending_rpc_block(data: dict) -> bool:
    """A block returned by the node is pending while its hash or number is null."""
    return data.get("hash") is None or data.get("number") is None


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------

@dataclass
class Transaction:
    hash: bytes = ZERO_HASH
    sender: bytes = b"\x00" * 20
    to: Optional[bytes] = None  # None for contract creation
    input: bytes = b""
    value: int = 0
    nonce: int = 0

    @property
    def is_contract_creation(self) -> bool:
        return self.to is None

    def to_rlp_list(self) -> list:
        return [
            self.hash,
            self.sender,
            self.to if self.to is not None else b"",
            self.input,
            self.value,
            self.nonce,
        ]

    @classmethod
    def from_rlp_list(cls, items: list) -> Transaction:
        tx_hash, sender, to, data, value, nonce = items
        return cls(
            hash=tx_hash,
            sender=sender,
            to=to or None,
            input=data,
            value=big_endian_to_int(value),
            nonce=big_endian_to_int(nonce),
        )

    @classmethod
    def from_rpc(cls, data: dict) -> Transaction:
        return cls(
            hash=_data(data["hash"]),
            sender=to_canonical_address(data["from"]),
            to=_address(data.get("to")),
            input=_data(data.get("input")),
            value=_quantity(data.get("value", 0)),
            nonce=_quantity(data.get("nonce", 0)),
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

@dataclass
class Entry:
    """A block persisted at exactly one height. Immutable once stored."""
    height: Height
    hash: bytes = ZERO_HASH
    parent_hash: bytes = ZERO_HASH
    timestamp: int = 0
    transactions: list[Transaction] = field(default_factory=list)

    def to_rlp_list(self) -> list:
        return [
            self.height,
            self.hash,
            self.parent_hash,
            self.timestamp,
            [tx.to_rlp_list() for tx in self.transactions],
        ]

    @classmethod
    def from_rlp_list(cls, items: list) -> Entry:
        height, block_hash, parent_hash, timestamp, txs = items
        return cls(
            height=big_endian_to_int(height),
            hash=block_hash,
            parent_hash=parent_hash,
            timestamp=big_endian_to_int(timestamp),
            transactions=[Transaction.from_rlp_list(tx) for tx in txs],
        )

    def to_rlp(self) -> bytes:
        return rlp.encode(self.to_rlp_list())

    @classmethod
    def from_rlp(cls, data: bytes) -> Entry:
        return cls.from_rlp_list(rlp.decode(data))

    @classmethod
    def from_rpc(cls, data: dict) -> Entry:
        """Build an entry from an eth_getBlockByNumber(..., true) result."""
        transactions = []
        for tx in data.get("transactions", []):
            if not isinstance(tx, dict):
                raise ValueError("block must be fetched with full transaction objects")
            transactions.append(Transaction.from_rpc(tx))
        return cls(
            height=_quantity(data["number"]),
            hash=_data(data["hash"]),
            parent_hash=_data(data["parentHash"]),
            timestamp=_quantity(data["timestamp"]),
            transactions=transactions,
        )
