"""Test fixtures for sync engine tests."""

from .addresses import (
    ALICE_ADDRESS,
    BOB_ADDRESS,
    CONTRACT_ADDRESS,
    ZERO_ADDRESS,
    TEST_ADDRESSES,
)
from .blocks import (
    block_hash,
    make_entry,
    make_transaction,
    rpc_block,
    rpc_transaction,
)
from .nodes import FakeNodeClient

__all__ = [
    # Addresses
    "ALICE_ADDRESS",
    "BOB_ADDRESS",
    "CONTRACT_ADDRESS",
    "ZERO_ADDRESS",
    "TEST_ADDRESSES",
    # Blocks
    "block_hash",
    "make_entry",
    "make_transaction",
    "rpc_block",
    "rpc_transaction",
    # Node
    "FakeNodeClient",
]
