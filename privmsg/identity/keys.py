"""
P-256 Key Module

Short-lived P-256 key pairs for capability result sealing and for the
backend's input-proof signatures.
"""

from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec


# Constants
CURVE = ec.SECP256R1()  # P-256 curve


@dataclass
class KeyPair:
    """P-256 key pair container."""
    private_key: Optional[ec.EllipticCurvePrivateKey]
    public_key: ec.EllipticCurvePublicKey

    @classmethod
    def generate(cls) -> 'KeyPair':
        """Generate a new P-256 key pair."""
        private_key = ec.generate_private_key(CURVE)
        return cls(private_key, private_key.public_key())

    def public_bytes(self) -> bytes:
        """Get public key as bytes (uncompressed point, 65 bytes)."""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint
        )

    @classmethod
    def from_public_bytes(cls, data: bytes) -> 'KeyPair':
        """Create KeyPair from public key bytes (public key only)."""
        public_key = ec.EllipticCurvePublicKey.from_encoded_point(CURVE, data)
        return cls(None, public_key)

    def sign(self, data: bytes) -> bytes:
        """
        Sign raw bytes with ECDSA-SHA256.

        Raises:
            ValueError: If this is a public-key-only pair
        """
        if self.private_key is None:
            raise ValueError("Private key required for signing")
        return self.private_key.sign(data, ec.ECDSA(hashes.SHA256()))


def verify_signature(data: bytes, signature: bytes, public_bytes: bytes) -> bool:
    """
    Verify an ECDSA-SHA256 signature against an encoded public key.

    Returns:
        True if signature is valid, False otherwise
    """
    try:
        public_key = KeyPair.from_public_bytes(public_bytes).public_key
        public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
        return True
    except (InvalidSignature, ValueError):
        return False
