# Message Codec Module
"""
Text <-> fixed-width payload conversion:
- UTF-8 encoding, byte truncation, zero padding
- Big-endian integer payloads of 64 or 256 bits
- Zero byte terminator on decode
"""

from .message_codec import (
    MessageCodec,
    encode,
    decode,
    to_bytes,
)

__all__ = [
    'MessageCodec',
    'encode',
    'decode',
    'to_bytes',
]
