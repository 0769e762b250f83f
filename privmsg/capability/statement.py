"""
Capability Statement

The canonical authorization statement a capability holder signs:

    DecryptionCapability(bytes publicKey,address[] contexts,
                         uint256 issuedAt,uint256 validityDays)

bound to the domain (name, version, chainId, verifyingContract). The
verifier re-derives this exact statement from the submitted fields, so
identical inputs must always produce byte-identical signable messages.
"""

from typing import Sequence, Tuple

from ..config import (
    DOMAIN_NAME,
    DOMAIN_VERSION,
    DEFAULT_CHAIN_ID,
    DEFAULT_VERIFYING_CONTRACT,
)
from ..identity.typed_data import TypedData
from ..identity.wallet import normalize_address

PRIMARY_TYPE = 'DecryptionCapability'
STATEMENT_FIELDS: Tuple[Tuple[str, str], ...] = (
    ('publicKey', 'bytes'),
    ('contexts', 'address[]'),
    ('issuedAt', 'uint256'),
    ('validityDays', 'uint256'),
)


def normalize_contexts(contexts: Sequence[str]) -> Tuple[str, ...]:
    """
    Normalize the target contexts of a statement.

    Order is preserved since it is part of the signed message.

    Raises:
        ValueError: If contexts are empty, malformed or repeated
    """
    normalized = tuple(normalize_address(c) for c in contexts)
    if not normalized:
        raise ValueError("A capability needs at least one context")
    if len(set(normalized)) != len(normalized):
        raise ValueError("Duplicate contexts in capability")
    return normalized


def build_statement(
    public_key: bytes,
    contexts: Sequence[str],
    issued_at: int,
    validity_days: int,
    chain_id: int = DEFAULT_CHAIN_ID,
    verifying_contract: str = DEFAULT_VERIFYING_CONTRACT
) -> TypedData:
    """
    Compose the canonical capability statement.

    Args:
        public_key: Ephemeral public key (uncompressed point)
        contexts: Context identifiers the holder wants to decrypt under
        issued_at: Issuance time in wall-clock seconds
        validity_days: Validity duration in days
        chain_id: Chain id for domain separation
        verifying_contract: Address of the verifier for domain separation

    Returns:
        Immutable TypedData ready for signing
    """
    if issued_at < 0 or validity_days < 0:
        raise ValueError("Issuance time and validity must be non-negative")

    domain = {
        'name': DOMAIN_NAME,
        'version': DOMAIN_VERSION,
        'chainId': chain_id,
        'verifyingContract': normalize_address(verifying_contract),
    }
    message = {
        'publicKey': bytes(public_key),
        'contexts': list(normalize_contexts(contexts)),
        'issuedAt': int(issued_at),
        'validityDays': int(validity_days),
    }
    return TypedData(
        domain=domain,
        primary_type=PRIMARY_TYPE,
        fields=STATEMENT_FIELDS,
        message=message,
    )
