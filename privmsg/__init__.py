# PrivMsg
"""
Confidential messaging over a public ledger.

Modules:
- codec: text <-> fixed-width payloads
- identity: wallets, addresses, typed-data signing
- ciphertext: encryption backend boundary and service handle
- capability: scoped, time-bounded decryption capabilities
- ledger: append-only inbox/outbox store
- messenger: send / fetch / batched decrypt
- integration: audit trail
"""

__version__ = "0.1.0"
