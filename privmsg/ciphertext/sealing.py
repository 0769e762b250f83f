"""
Payload Sealing

Seals decrypted payloads to a capability's ephemeral public key so only
the capability holder can read the backend's answer:

- Fresh backend-side ephemeral P-256 key per sealed item
- ECDH shared secret -> HKDF-SHA256 -> AES-256-GCM key
- Associated data binds the sealed item to its handle

Results sealed to another capability's key cannot be opened, which keeps
a stale capability's answers from mixing into a new request.
"""

import secrets
from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..identity.keys import CURVE, KeyPair

# Constants
AES_KEY_SIZE = 32       # 256 bits
NONCE_SIZE = 12         # 96 bits for GCM
SEAL_INFO = b"privmsg_reencrypt_v1"


@dataclass(frozen=True)
class SealedPayload:
    """A payload re-encrypted for one capability key."""
    ephemeral_public: bytes   # 65 bytes, uncompressed point
    nonce: bytes              # 12 bytes
    ciphertext: bytes         # ciphertext with 16-byte GCM tag


def hkdf_derive_key(shared_secret: bytes, info: bytes = SEAL_INFO,
                    length: int = AES_KEY_SIZE) -> bytes:
    """Derive an AES key from an ECDH shared secret (RFC 5869)."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=None,
        info=info,
    )
    return hkdf.derive(shared_secret)


def seal(plaintext: bytes, recipient_public: bytes, associated_data: bytes) -> SealedPayload:
    """
    Encrypt plaintext for the holder of recipient_public.

    Args:
        plaintext: Data to seal
        recipient_public: Recipient public key (uncompressed point)
        associated_data: Authenticated context (the handle)
    """
    ephemeral = KeyPair.generate()
    peer = ec.EllipticCurvePublicKey.from_encoded_point(CURVE, recipient_public)
    shared_secret = ephemeral.private_key.exchange(ec.ECDH(), peer)
    key = hkdf_derive_key(shared_secret)

    nonce = secrets.token_bytes(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, associated_data)
    return SealedPayload(ephemeral.public_bytes(), nonce, ciphertext)


def unseal(sealed: SealedPayload, private_key: ec.EllipticCurvePrivateKey,
           associated_data: bytes) -> bytes:
    """
    Open a sealed payload with the recipient's private key.

    Raises:
        InvalidTag: If the payload was not sealed to this key or was modified
    """
    peer = ec.EllipticCurvePublicKey.from_encoded_point(CURVE, sealed.ephemeral_public)
    shared_secret = private_key.exchange(ec.ECDH(), peer)
    key = hkdf_derive_key(shared_secret)
    return AESGCM(key).decrypt(sealed.nonce, sealed.ciphertext, associated_data)
