# Messenger Module
"""
User-facing messaging operations:
- send: encode, encrypt, append
- fetch_inbox / fetch_outbox: ledger-only listing
- decrypt: batched redemption with one capability per batch
"""

from .orchestrator import (
    Messenger,
    DecryptionBatch,
    InboxMessage,
    ENCRYPTED_PLACEHOLDER,
)

__all__ = [
    'Messenger',
    'DecryptionBatch',
    'InboxMessage',
    'ENCRYPTED_PLACEHOLDER',
]
