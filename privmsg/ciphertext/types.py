"""Value types shared across the ciphertext service boundary."""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class EncryptedInput:
    """Result of encrypting one payload: an opaque handle and its input proof."""
    handle: str
    proof: bytes


@dataclass(frozen=True)
class HandleContextPair:
    """A ciphertext handle together with the context it is bound to."""
    handle: str
    context: str


@dataclass(frozen=True)
class DecryptionRequest:
    """
    Everything the backend needs to re-derive and verify a capability.

    The statement itself is never sent; the backend rebuilds it from these
    fields and recovers the signer from the signature over it.
    """
    pairs: Tuple[HandleContextPair, ...]
    public_key: bytes
    signature: bytes
    user_address: str
    contexts: Tuple[str, ...]
    issued_at: int
    validity_days: int
