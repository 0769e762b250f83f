"""
Identity Wallet Module

Stand-in for the external wallet that owns an identity and signs
structured data on request.

- secp256k1 accounts from eth_account
- Addresses: lower-cased 0x-prefixed account addresses
- EIP-712 typed-data signatures, verified by signer recovery
"""

import re
from typing import Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError

from .typed_data import TypedData


# Constants
ADDRESS_BYTES = 20
NULL_ADDRESS = '0x' + '00' * ADDRESS_BYTES
SIGNATURE_BYTES = 65  # r | s | v

_ADDRESS_RE = re.compile(r'^0x[0-9a-fA-F]{40}$')


# ============================================================================
# Addresses
# ============================================================================

def normalize_address(address: str) -> str:
    """
    Validate and lower-case an address.

    Raises:
        ValueError: If the address is not 0x followed by 40 hex characters
    """
    if not isinstance(address, str) or not _ADDRESS_RE.match(address):
        raise ValueError(f"Malformed address: {address!r}")
    return address.lower()


def is_null_address(address: str) -> bool:
    return normalize_address(address) == NULL_ADDRESS


def recover_typed_data_signer(typed_data: TypedData, signature: bytes) -> Optional[str]:
    """
    Recover the address that signed a structured record.

    Returns:
        Lower-cased signer address, or None if the signature is malformed
    """
    if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_BYTES:
        return None
    try:
        signer = Account.recover_message(typed_data.signable(), signature=signature)
    except (BadSignature, KeyValidationError, TypeError, ValueError):
        return None
    return normalize_address(signer)


# ============================================================================
# Wallet
# ============================================================================

class Wallet:
    """
    Holds one identity's account and signs on its behalf.

    Example:
        alice = Wallet()
        signature = alice.sign_typed_data(statement)
        assert Wallet.verify_typed_data(statement, signature, alice.address)
    """

    def __init__(self, account: Optional[LocalAccount] = None):
        self._account = account or Account.create()
        self._address = normalize_address(self._account.address)

    @classmethod
    def from_key(cls, private_key) -> 'Wallet':
        """Restore a wallet from a hex or raw 32-byte private key."""
        return cls(Account.from_key(private_key))

    @property
    def address(self) -> str:
        return self._address

    def sign_typed_data(self, typed_data: TypedData) -> bytes:
        """Sign a structured record (65-byte r|s|v signature)."""
        signed = self._account.sign_message(typed_data.signable())
        return bytes(signed.signature)

    @staticmethod
    def verify_typed_data(typed_data: TypedData, signature: bytes, address: str) -> bool:
        return recover_typed_data_signer(typed_data, signature) == normalize_address(address)

    def __repr__(self) -> str:
        return f"Wallet({self._address})"
