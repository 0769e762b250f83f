# Integration Module
"""
Audit logging that records messenger events to a hash-chained log.

All events are logged with privacy-preserving identity hashes.
"""

# Lazy imports to avoid RuntimeWarning when running module directly
def __getattr__(name):
    """Lazy import to avoid circular import issues."""
    from . import event_logger
    return getattr(event_logger, name)

__all__ = [
    'EventType',
    'SecurityEvent',
    'EventLogger',
    'get_identity_hash',
    'get_identity_hash_short',
]
