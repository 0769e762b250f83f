"""
Message Codec Module

Converts between short text messages and fixed-width unsigned integer
payloads suitable for homomorphic encryption.

Encoding:
    text -> UTF-8 bytes -> truncate to width -> zero pad right -> big-endian int

Decoding:
    int -> width big-endian bytes -> cut at first zero byte -> UTF-8 text

Limitations:
- A zero byte acts as the terminator, so messages that legitimately
  contain a zero byte lose everything after it.
- Truncation is byte based and may split a multi-byte character; such a
  payload fails to decode with InvalidEncoding.
"""

from typing import Union

from ..config import SUPPORTED_WIDTHS
from ..errors import InvalidEncoding


def _check_width(width_bytes: int) -> None:
    if width_bytes <= 0:
        raise ValueError("Width must be a positive number of bytes")


def to_bytes(text: Union[str, bytes]) -> bytes:
    """Get the UTF-8 bytes of a message."""
    if isinstance(text, str):
        return text.encode('utf-8')
    return bytes(text)


def encode(text: Union[str, bytes], width_bytes: int) -> int:
    """
    Encode a message into a fixed-width payload.

    Never raises for long input: the message is truncated to exactly
    width_bytes bytes before padding.

    Args:
        text: Message text (str is UTF-8 encoded, bytes used as-is)
        width_bytes: Payload width in bytes (W/8)

    Returns:
        Unsigned integer of width_bytes * 8 bits
    """
    _check_width(width_bytes)
    data = to_bytes(text)[:width_bytes]
    padded = data + b'\x00' * (width_bytes - len(data))
    return int.from_bytes(padded, 'big')


def decode(payload: int, width_bytes: int) -> str:
    """
    Decode a fixed-width payload back into text.

    Args:
        payload: Unsigned integer produced by encode()
        width_bytes: Payload width in bytes (W/8)

    Returns:
        The message text up to the first zero byte

    Raises:
        InvalidEncoding: If the payload does not fit the width or the
            prefix is not valid UTF-8
    """
    _check_width(width_bytes)
    if payload < 0 or payload >= 1 << (width_bytes * 8):
        raise InvalidEncoding(
            f"Payload does not fit in {width_bytes} bytes",
            details={'width_bytes': width_bytes},
        )

    raw = payload.to_bytes(width_bytes, 'big')
    end = raw.find(b'\x00')
    if end == -1:
        end = width_bytes

    try:
        return raw[:end].decode('utf-8')
    except UnicodeDecodeError as exc:
        raise InvalidEncoding(
            f"Payload prefix is not valid UTF-8: {exc.reason}",
            details={'position': exc.start},
        ) from exc


class MessageCodec:
    """
    Codec bound to one deployment width.

    Example:
        codec = MessageCodec(64)
        payload = codec.encode("hi")
        assert codec.decode(payload) == "hi"
    """

    def __init__(self, width_bits: int):
        if width_bits not in SUPPORTED_WIDTHS:
            raise ValueError(
                f"Unsupported payload width {width_bits}, expected one of {SUPPORTED_WIDTHS}"
            )
        self._width_bits = width_bits

    @property
    def width_bits(self) -> int:
        return self._width_bits

    @property
    def max_bytes(self) -> int:
        """Message limit L in bytes."""
        return self._width_bits // 8

    def fits(self, text: Union[str, bytes]) -> bool:
        """Check whether a message is stored without truncation."""
        return len(to_bytes(text)) <= self.max_bytes

    def encode(self, text: Union[str, bytes]) -> int:
        return encode(text, self.max_bytes)

    def decode(self, payload: int) -> str:
        return decode(payload, self.max_bytes)
