# Identity Module
"""
Identity and structured signing:
- P-256 key pairs for sealing and proofs
- EIP-712 typed-data records
- Wallet that signs statements for its identity
"""

from .typed_data import TypedData

from .keys import (
    KeyPair,
    verify_signature,
)

from .wallet import (
    Wallet,
    NULL_ADDRESS,
    normalize_address,
    is_null_address,
    recover_typed_data_signer,
)

__all__ = [
    'TypedData',
    'KeyPair',
    'verify_signature',
    'Wallet',
    'NULL_ADDRESS',
    'normalize_address',
    'is_null_address',
    'recover_typed_data_signer',
]
