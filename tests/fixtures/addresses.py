"""Standard test addresses.

All addresses are 20 bytes (canonical form, not checksummed).
"""

ALICE_ADDRESS = bytes.fromhex("1a642f0e3c3af545e7acbd38b07251b3990914f1")
BOB_ADDRESS = bytes.fromhex("2b5ad5c4795c026514f8317c7a215e218dccd6cf")
CONTRACT_ADDRESS = bytes.fromhex("5fbdb2315678afecb367f032d93f642f64180aa3")
ZERO_ADDRESS = b"\x00" * 20

TEST_ADDRESSES = [ALICE_ADDRESS, BOB_ADDRESS, CONTRACT_ADDRESS]
