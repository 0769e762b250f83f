"""
Authorization Capability Manager

Issues short-lived, scoped decryption capabilities.

State machine (per capability, never backwards):

    IDLE -> KEYPAIR_GENERATED -> MESSAGE_COMPOSED -> AWAITING_SIGNATURE -> REDEEMED
      \\___________________\\______________________\\______________________\\-> EXPIRED

- Every capability gets a fresh ephemeral P-256 key pair.
- The statement binds the public key, the target contexts, the issuance
  time and the validity window; it is composed once and never changed.
- The signature is written exactly once by the identity owner.
- A capability expires strictly after issued_at + validity_days.

Replay of a signed capability within its window is not prevented by the
protocol; callers must not rely on single redemption.
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from ..config import (
    DEFAULT_CHAIN_ID,
    DEFAULT_VALIDITY_DAYS,
    DEFAULT_VERIFYING_CONTRACT,
    SECONDS_PER_DAY,
)
from ..errors import CapabilityExpired, CapabilityStateError
from ..identity.typed_data import TypedData
from ..identity.keys import KeyPair
from ..identity.wallet import Wallet
from .statement import build_statement, normalize_contexts

logger = logging.getLogger(__name__)


class CapabilityState(Enum):
    IDLE = "idle"
    KEYPAIR_GENERATED = "keypair_generated"
    MESSAGE_COMPOSED = "message_composed"
    AWAITING_SIGNATURE = "awaiting_signature"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


_TRANSITIONS = {
    CapabilityState.IDLE: {CapabilityState.KEYPAIR_GENERATED},
    CapabilityState.KEYPAIR_GENERATED: {CapabilityState.MESSAGE_COMPOSED},
    CapabilityState.MESSAGE_COMPOSED: {CapabilityState.AWAITING_SIGNATURE},
    CapabilityState.AWAITING_SIGNATURE: {CapabilityState.REDEEMED},
    CapabilityState.REDEEMED: set(),
    CapabilityState.EXPIRED: set(),
}


@dataclass
class DecryptionCapability:
    """
    A scoped, time-bounded decryption capability.

    The key pair, statement and signature are single-writer fields: set
    once during issuance and read-only afterwards.
    """
    contexts: Tuple[str, ...]
    issued_at: int
    validity_days: int
    capability_id: str = field(default_factory=lambda: secrets.token_hex(8))
    state: CapabilityState = CapabilityState.IDLE
    key_pair: Optional[KeyPair] = field(default=None, repr=False)
    statement: Optional[TypedData] = field(default=None, repr=False)
    signature: Optional[bytes] = field(default=None, repr=False)
    signer_address: Optional[str] = None

    @property
    def public_key(self) -> bytes:
        if self.key_pair is None:
            raise CapabilityStateError("Capability has no key pair yet")
        return self.key_pair.public_bytes()

    @property
    def expires_at(self) -> int:
        return self.issued_at + self.validity_days * SECONDS_PER_DAY

    @property
    def is_signed(self) -> bool:
        return self.signature is not None

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def covers(self, context: str) -> bool:
        return context.lower() in self.contexts

    def transition(self, new_state: CapabilityState) -> None:
        """
        Move to a new state.

        Raises:
            CapabilityStateError: If the transition is not allowed
        """
        allowed = _TRANSITIONS[self.state]
        if new_state is CapabilityState.EXPIRED and self.state is not CapabilityState.EXPIRED:
            allowed = allowed | {CapabilityState.EXPIRED}
        if new_state not in allowed:
            raise CapabilityStateError(
                f"Illegal transition {self.state.value} -> {new_state.value}",
                details={'capability': self.capability_id},
            )
        self.state = new_state

    def attach_signature(self, signature: bytes, signer_address: str) -> None:
        if self.state is not CapabilityState.AWAITING_SIGNATURE:
            raise CapabilityStateError(
                f"Cannot sign capability in state {self.state.value}"
            )
        if self.signature is not None:
            raise CapabilityStateError("Capability is already signed")
        self.signature = signature
        self.signer_address = signer_address


class CapabilityManager:
    """
    Issues, signs and tracks decryption capabilities.

    Example:
        manager = CapabilityManager()
        capability = manager.issue([context])
        manager.request_signature(capability, wallet)
        manager.ensure_redeemable(capability)
        ... submit to the ciphertext service ...
        manager.mark_redeemed(capability)
    """

    def __init__(
        self,
        chain_id: int = DEFAULT_CHAIN_ID,
        verifying_contract: str = DEFAULT_VERIFYING_CONTRACT,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
        clock: Callable[[], float] = time.time
    ):
        if validity_days <= 0:
            raise ValueError("Validity must be at least one day")
        self._chain_id = chain_id
        self._verifying_contract = verifying_contract
        self._validity_days = validity_days
        self._clock = clock

    @property
    def validity_days(self) -> int:
        return self._validity_days

    def now(self) -> int:
        return int(self._clock())

    def issue(
        self,
        contexts: Sequence[str],
        issued_at: Optional[int] = None,
        validity_days: Optional[int] = None
    ) -> DecryptionCapability:
        """
        Issue a new capability scoped to the given contexts.

        Args:
            contexts: Context identifiers to authorize
            issued_at: Issuance time (defaults to now)
            validity_days: Validity window (defaults to the policy default)

        Returns:
            Capability in MESSAGE_COMPOSED state
        """
        capability = DecryptionCapability(
            contexts=normalize_contexts(contexts),
            issued_at=self.now() if issued_at is None else int(issued_at),
            validity_days=self._validity_days if validity_days is None else int(validity_days),
        )

        capability.key_pair = KeyPair.generate()
        capability.transition(CapabilityState.KEYPAIR_GENERATED)

        capability.statement = build_statement(
            public_key=capability.public_key,
            contexts=capability.contexts,
            issued_at=capability.issued_at,
            validity_days=capability.validity_days,
            chain_id=self._chain_id,
            verifying_contract=self._verifying_contract,
        )
        capability.transition(CapabilityState.MESSAGE_COMPOSED)

        logger.debug(
            "Issued capability %s for %d context(s), valid %d day(s)",
            capability.capability_id, len(capability.contexts), capability.validity_days,
        )
        return capability

    def request_signature(self, capability: DecryptionCapability, wallet: Wallet) -> bytes:
        """
        Hand the composed statement to the identity owner for signing.

        Raises:
            CapabilityExpired: If the capability expired before signing
            CapabilityStateError: If the statement is not composed
        """
        if capability.state is not CapabilityState.MESSAGE_COMPOSED:
            raise CapabilityStateError(
                f"Cannot request signature in state {capability.state.value}"
            )
        self._check_expiry(capability, self.now())

        capability.transition(CapabilityState.AWAITING_SIGNATURE)
        signature = wallet.sign_typed_data(capability.statement)
        capability.attach_signature(signature, wallet.address)
        return signature

    def ensure_redeemable(self, capability: DecryptionCapability,
                          now: Optional[float] = None) -> None:
        """
        Check a capability locally before submitting it.

        Raises:
            CapabilityExpired: If the validity window has elapsed
            CapabilityStateError: If unsigned or already redeemed
        """
        if capability.state is not CapabilityState.AWAITING_SIGNATURE:
            raise CapabilityStateError(
                f"Capability cannot be redeemed in state {capability.state.value}"
            )
        self._check_expiry(capability, self.now() if now is None else now)
        if not capability.is_signed:
            raise CapabilityStateError("Capability is not signed")

    def mark_redeemed(self, capability: DecryptionCapability) -> None:
        capability.transition(CapabilityState.REDEEMED)

    def mark_expired(self, capability: DecryptionCapability) -> None:
        if capability.state is not CapabilityState.EXPIRED:
            capability.transition(CapabilityState.EXPIRED)

    def _check_expiry(self, capability: DecryptionCapability, now: float) -> None:
        if capability.is_expired(now):
            self.mark_expired(capability)
            raise CapabilityExpired(
                "Capability validity window has elapsed",
                details={
                    'capability': capability.capability_id,
                    'expires_at': capability.expires_at,
                },
            )
