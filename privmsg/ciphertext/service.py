"""
Ciphertext Service Adapter

Client-side boundary to the encryption backend:

- encrypt(context, owner, payload) -> EncryptedInput(handle, proof)
- decrypt(capability, pairs) -> {handle: payload}

Failure classification:
- Transport failures and timeouts -> BackendUnavailable (retryable,
  encrypt and decrypt have no side effect on failure)
- Backend verdicts (Unauthorized, CapabilityExpired) propagate unchanged
- A partial result is valid output: missing handles are "not decryptable
  under this capability", never empty content
"""

import asyncio
import logging
from typing import Awaitable, Dict, Iterable, Sequence, TypeVar

from cryptography.exceptions import InvalidTag

from ..capability.manager import CapabilityState, DecryptionCapability
from ..capability.statement import build_statement
from ..config import (
    DEFAULT_BACKEND_TIMEOUT,
    DEFAULT_CHAIN_ID,
    DEFAULT_VERIFYING_CONTRACT,
    DEFAULT_WIDTH_BITS,
    SUPPORTED_WIDTHS,
    MessengerConfig,
)
from ..errors import (
    BackendUnavailable,
    CapabilityStateError,
    MessengerError,
    Unauthorized,
)
from ..identity.typed_data import TypedData
from ..identity.keys import KeyPair
from ..identity.wallet import normalize_address
from .relayer import LocalRelayer
from .sealing import unseal
from .types import DecryptionRequest, EncryptedInput, HandleContextPair

logger = logging.getLogger(__name__)

T = TypeVar('T')

TRANSPORT_ERRORS = (ConnectionError, asyncio.TimeoutError, TimeoutError, OSError)


class CiphertextService:
    """
    Adapter over a relay transport, bound to one payload width.

    Example:
        service = CiphertextService(LocalRelayer(backend), width_bits=64)
        encrypted = await service.encrypt(context, alice, payload)
        payloads = await service.decrypt(capability, [HandleContextPair(h, context)])
    """

    def __init__(
        self,
        relayer: LocalRelayer,
        width_bits: int = DEFAULT_WIDTH_BITS,
        chain_id: int = DEFAULT_CHAIN_ID,
        verifying_contract: str = DEFAULT_VERIFYING_CONTRACT,
        timeout: float = DEFAULT_BACKEND_TIMEOUT
    ):
        if width_bits not in SUPPORTED_WIDTHS:
            raise ValueError(f"Unsupported payload width {width_bits}")
        self._relayer = relayer
        self._width_bits = width_bits
        self._chain_id = chain_id
        self._verifying_contract = verifying_contract
        self._timeout = timeout

    @classmethod
    def from_config(cls, relayer: LocalRelayer, config: MessengerConfig) -> 'CiphertextService':
        return cls(
            relayer,
            width_bits=config.width_bits,
            chain_id=config.backend.chain_id,
            verifying_contract=config.backend.verifying_contract,
            timeout=config.backend.timeout,
        )

    @property
    def width_bits(self) -> int:
        return self._width_bits

    # ========================================================================
    # Capability helpers
    # ========================================================================

    @staticmethod
    def generate_keypair() -> KeyPair:
        """Generate an ephemeral key pair for a decryption capability."""
        return KeyPair.generate()

    def create_statement(self, public_key: bytes, contexts: Sequence[str],
                         issued_at: int, validity_days: int) -> TypedData:
        """Compose the statement this backend expects to be signed."""
        return build_statement(
            public_key=public_key,
            contexts=contexts,
            issued_at=issued_at,
            validity_days=validity_days,
            chain_id=self._chain_id,
            verifying_contract=self._verifying_contract,
        )

    # ========================================================================
    # Encrypt / decrypt
    # ========================================================================

    async def encrypt(self, context_id: str, owner: str, payload: int) -> EncryptedInput:
        """
        Encrypt a payload for a context on behalf of its owner.

        Raises:
            ValueError: If the payload does not fit the configured width
            BackendUnavailable: If the relay cannot be reached
        """
        if payload < 0 or payload >= 1 << self._width_bits:
            raise ValueError(f"Payload does not fit in {self._width_bits} bits")

        return await self._call(
            self._relayer.encrypt_input(context_id, owner, payload, self._width_bits),
            "encrypt",
        )

    async def decrypt(self, capability: DecryptionCapability,
                      pairs: Iterable[HandleContextPair]) -> Dict[str, int]:
        """
        Redeem a signed capability for a set of handles.

        Args:
            capability: Signed capability covering every pair's context
            pairs: Handles with the context each is bound to

        Returns:
            Mapping handle -> payload; may be partial

        Raises:
            CapabilityStateError: If the capability is unsigned or spent
            Unauthorized: If a pair's context is outside the capability,
                or the backend rejects the capability
            CapabilityExpired: If the backend reports expiry
            BackendUnavailable: If the relay cannot be reached
        """
        if capability.state is not CapabilityState.AWAITING_SIGNATURE or not capability.is_signed:
            raise CapabilityStateError(
                f"Capability cannot be redeemed in state {capability.state.value}"
            )

        pairs = tuple(
            HandleContextPair(p.handle, normalize_address(p.context)) for p in pairs
        )
        if not pairs:
            return {}
        for pair in pairs:
            if not capability.covers(pair.context):
                raise Unauthorized(
                    "Capability was not composed for this context",
                    details={'context': pair.context},
                )

        request = DecryptionRequest(
            pairs=pairs,
            public_key=capability.public_key,
            signature=capability.signature,
            user_address=capability.signer_address,
            contexts=capability.contexts,
            issued_at=capability.issued_at,
            validity_days=capability.validity_days,
        )
        sealed = await self._call(self._relayer.user_decrypt(request), "decrypt")

        requested = {pair.handle for pair in pairs}
        payloads: Dict[str, int] = {}
        for handle, item in sealed.items():
            if handle not in requested:
                continue
            try:
                plaintext = unseal(item, capability.key_pair.private_key, handle.encode('ascii'))
            except InvalidTag as exc:
                raise MessengerError(
                    "Backend result was not sealed to this capability",
                    details={'handle': handle},
                ) from exc
            payloads[handle] = int.from_bytes(plaintext, 'big')
        return payloads

    async def _call(self, operation: Awaitable[T], name: str) -> T:
        try:
            return await asyncio.wait_for(operation, timeout=self._timeout)
        except MessengerError:
            raise
        except TRANSPORT_ERRORS as exc:
            logger.warning("Backend unavailable during %s: %s", name, exc)
            raise BackendUnavailable(
                f"Encryption backend unavailable during {name}",
                details={'operation': name, 'cause': str(exc)},
            ) from exc
