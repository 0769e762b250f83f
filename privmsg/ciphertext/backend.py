"""
Local Encryption Backend

In-process stand-in for the external homomorphic-encryption backend. It
keeps the same contract as the remote service:

- create_input: store a ciphertext, mint a handle and an input proof
- verify_input: check a proof binds (handle, context, owner)
- allow / is_allowed: the handle ACL
- user_decrypt: verify a signed capability and return payloads sealed to
  the capability's ephemeral key

Internals (not part of the contract):
- Payloads stored under AES-256-GCM with a backend storage key
- Handles are SHA-256 over the stored ciphertext, context and chain id
- Proofs are P-256 ECDSA signatures by the backend's proof key
"""

import hashlib
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Set

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..capability.statement import build_statement
from ..config import (
    DEFAULT_CHAIN_ID,
    DEFAULT_VERIFYING_CONTRACT,
    MAX_VALIDITY_DAYS,
    SECONDS_PER_DAY,
    SUPPORTED_WIDTHS,
)
from ..errors import CapabilityExpired, InvalidProof, Unauthorized
from ..identity.typed_data import TypedData
from ..identity.keys import KeyPair, verify_signature
from ..identity.wallet import normalize_address, recover_typed_data_signer
from .sealing import NONCE_SIZE, SealedPayload, seal
from .types import DecryptionRequest, EncryptedInput

logger = logging.getLogger(__name__)

MAX_CLOCK_SKEW = 300  # seconds a capability may be issued in the future


@dataclass
class _StoredCiphertext:
    context: str
    owner: str
    width_bits: int
    nonce: bytes
    ciphertext: bytes
    grants: Set[str] = field(default_factory=set)


def _proof_message(handle: str, context: str, owner: str) -> bytes:
    return b'privmsg.input|' + '|'.join((handle, context, owner)).encode('ascii')


class LocalFheBackend:
    """
    Opaque encryption backend with its own key material and ACL.

    Example:
        backend = LocalFheBackend()
        encrypted = backend.create_input(context, alice, payload, 256)
        backend.verify_input(encrypted.handle, encrypted.proof, context, alice)
        backend.allow(encrypted.handle, bob, context)
    """

    def __init__(
        self,
        chain_id: int = DEFAULT_CHAIN_ID,
        verifying_contract: str = DEFAULT_VERIFYING_CONTRACT,
        strict_acl: bool = False,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the backend.

        Args:
            chain_id: Chain id bound into handles and capability statements
            verifying_contract: Verifier address in the statement domain
            strict_acl: Reject a whole batch when any handle lacks a grant
                instead of omitting that handle from the result
            clock: Wall-clock source in seconds
        """
        self._chain_id = chain_id
        self._verifying_contract = normalize_address(verifying_contract)
        self._strict_acl = strict_acl
        self._clock = clock
        self._storage = AESGCM(AESGCM.generate_key(bit_length=256))
        self._proof_key = KeyPair.generate()
        self._store: Dict[str, _StoredCiphertext] = {}

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def verifying_contract(self) -> str:
        return self._verifying_contract

    @property
    def proof_signer(self) -> bytes:
        """Public key that signs input proofs."""
        return self._proof_key.public_bytes()

    @property
    def handle_count(self) -> int:
        return len(self._store)

    # ========================================================================
    # Encryption side
    # ========================================================================

    def create_input(self, context: str, owner: str, payload: int,
                     width_bits: int) -> EncryptedInput:
        """
        Encrypt a payload bound to (context, owner).

        Returns:
            EncryptedInput with a fresh handle and its proof

        Raises:
            ValueError: If the width is unsupported or the payload does not fit
        """
        if width_bits not in SUPPORTED_WIDTHS:
            raise ValueError(f"Unsupported payload width {width_bits}")
        if payload < 0 or payload >= 1 << width_bits:
            raise ValueError(f"Payload does not fit in {width_bits} bits")

        context = normalize_address(context)
        owner = normalize_address(owner)

        nonce = secrets.token_bytes(NONCE_SIZE)
        plaintext = payload.to_bytes(width_bits // 8, 'big')
        ciphertext = self._storage.encrypt(nonce, plaintext, context.encode('ascii'))

        handle = '0x' + hashlib.sha256(
            nonce + ciphertext +
            bytes.fromhex(context[2:]) +
            self._chain_id.to_bytes(32, 'big')
        ).hexdigest()

        self._store[handle] = _StoredCiphertext(
            context=context,
            owner=owner,
            width_bits=width_bits,
            nonce=nonce,
            ciphertext=ciphertext,
        )
        proof = self._proof_key.sign(_proof_message(handle, context, owner))
        return EncryptedInput(handle=handle, proof=proof)

    def verify_input(self, handle: str, proof: bytes, context: str, owner: str) -> None:
        """
        Verify an input proof.

        Raises:
            InvalidProof: If the handle is unknown or the proof does not bind
                it to the given context and owner
        """
        context = normalize_address(context)
        owner = normalize_address(owner)
        stored = self._store.get(handle)
        if stored is None:
            raise InvalidProof("Unknown ciphertext handle", details={'handle': handle})
        if stored.context != context or stored.owner != owner:
            raise InvalidProof("Handle is bound to a different context or owner")
        if not verify_signature(_proof_message(handle, context, owner), proof,
                                self.proof_signer):
            raise InvalidProof("Input proof signature is invalid")

    # ========================================================================
    # ACL
    # ========================================================================

    def allow(self, handle: str, principal: str, context: str) -> None:
        """
        Grant a principal permanent decrypt access to a handle.

        Only the context the handle was minted for may grant.

        Raises:
            Unauthorized: If the handle is unknown or bound to another context
        """
        stored = self._store.get(handle)
        if stored is None or stored.context != normalize_address(context):
            raise Unauthorized("Context may not grant access to this handle")
        stored.grants.add(normalize_address(principal))

    def is_allowed(self, handle: str, principal: str) -> bool:
        stored = self._store.get(handle)
        return stored is not None and normalize_address(principal) in stored.grants

    def grants(self, handle: str) -> FrozenSet[str]:
        stored = self._store.get(handle)
        return frozenset(stored.grants) if stored else frozenset()

    # ========================================================================
    # Decryption side
    # ========================================================================

    def user_decrypt(self, request: DecryptionRequest) -> Dict[str, SealedPayload]:
        """
        Redeem a signed capability.

        Returns:
            Mapping handle -> payload sealed to the capability key. Handles
            the user holds no grant for are omitted unless strict_acl is set.

        Raises:
            CapabilityExpired: If the validity window has elapsed
            Unauthorized: If the capability is malformed, forged or does
                not cover a requested context
        """
        statement = self._verify_capability(request)
        user = normalize_address(request.user_address)
        contexts = statement.message['contexts']

        result: Dict[str, SealedPayload] = {}
        denied = []
        for pair in request.pairs:
            context = normalize_address(pair.context)
            if context not in contexts:
                raise Unauthorized(
                    "Capability does not cover the requested context",
                    details={'context': context},
                )
            stored = self._store.get(pair.handle)
            if stored is None or stored.context != context or user not in stored.grants:
                denied.append(pair.handle)
                continue

            plaintext = self._storage.decrypt(
                stored.nonce, stored.ciphertext, stored.context.encode('ascii')
            )
            result[pair.handle] = seal(
                plaintext, request.public_key, pair.handle.encode('ascii')
            )

        if denied and self._strict_acl:
            raise Unauthorized(
                "Capability owner lacks a grant for requested handles",
                details={'handles': denied},
            )
        if denied:
            logger.info("Omitted %d ungranted handle(s) from decryption", len(denied))
        return result

    def _verify_capability(self, request: DecryptionRequest) -> TypedData:
        now = self._clock()

        if not 1 <= request.validity_days <= MAX_VALIDITY_DAYS:
            raise Unauthorized(
                f"Validity must be between 1 and {MAX_VALIDITY_DAYS} days"
            )
        if request.issued_at > now + MAX_CLOCK_SKEW:
            raise Unauthorized("Capability is issued in the future")
        if now > request.issued_at + request.validity_days * SECONDS_PER_DAY:
            raise CapabilityExpired("Capability validity window has elapsed")

        try:
            KeyPair.from_public_bytes(request.public_key)
        except ValueError as exc:
            raise Unauthorized("Capability public key is not a valid point") from exc

        try:
            statement = build_statement(
                public_key=request.public_key,
                contexts=request.contexts,
                issued_at=request.issued_at,
                validity_days=request.validity_days,
                chain_id=self._chain_id,
                verifying_contract=self._verifying_contract,
            )
        except ValueError as exc:
            raise Unauthorized(f"Malformed capability: {exc}") from exc

        signer = recover_typed_data_signer(statement, request.signature)
        if signer is None:
            raise Unauthorized("Capability signature is invalid")
        if signer != request.user_address.lower():
            raise Unauthorized("Capability was not signed by the user address")
        return statement
