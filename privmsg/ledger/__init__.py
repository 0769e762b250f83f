# Message Ledger Module
"""
Append-only message ledger including:
- Per-identity inbox and outbox with stable indices
- Addressing checks before any mutation
- Sender and recipient grants at write time
- MessageSent notifications
- Hash-chained block log with Merkle roots

Security features:
- Immutable records and blocks (frozen dataclasses)
- Full chain validation
"""

# Lazy imports to avoid RuntimeWarning when running module directly
def __getattr__(name):
    """Lazy import to avoid circular import issues."""
    from . import chain, message_ledger
    for module in (message_ledger, chain):
        if hasattr(module, name):
            return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    'Box',
    'MessageRecord',
    'BoxEntry',
    'MessageSent',
    'MessageLedger',
    'Block',
    'HashChain',
    'ValidationError',
    'merkle_root',
    'compute_block_hash',
    'GENESIS_PREV_HASH',
]
