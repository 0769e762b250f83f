# Authorization Capability Module
"""
Decryption capabilities:
- Ephemeral key pair per capability
- Canonical, domain-separated statement
- One signature by the identity owner
- Bounded validity window (default 7 days)
"""

from .statement import (
    build_statement,
    normalize_contexts,
    PRIMARY_TYPE,
    STATEMENT_FIELDS,
)

from .manager import (
    CapabilityManager,
    CapabilityState,
    DecryptionCapability,
)

__all__ = [
    'build_statement',
    'normalize_contexts',
    'PRIMARY_TYPE',
    'STATEMENT_FIELDS',
    'CapabilityManager',
    'CapabilityState',
    'DecryptionCapability',
]
