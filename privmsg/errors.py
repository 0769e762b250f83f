"""
Error Taxonomy

Every failure the messenger can report is a subclass of MessengerError
and carries a stable, searchable error code plus a retryable flag:

- MSG_001 InvalidEncoding       (codec, fatal to that decode only)
- MSG_002 InvalidRecipient      (ledger, rejected before mutation)
- MSG_003 SelfMessage           (ledger, rejected before mutation)
- MSG_004 BackendUnavailable    (transport, retryable for encrypt/decrypt)
- MSG_005 Unauthorized          (capability lacks a grant or is malformed)
- MSG_006 InvalidProof          (input proof does not match the handle)
- MSG_007 CapabilityExpired     (re-issue, never resubmit)
- MSG_008 CapabilityStateError  (illegal capability transition)
- MSG_009 IndexOutOfBounds      (query error)

Usage:
    from privmsg.errors import MessengerError

    try:
        await messenger.send(bob, "hi")
    except MessengerError as exc:
        if exc.retryable:
            ...
"""

from typing import Any, Dict, Optional


class MessengerError(Exception):
    """Base class for all messenger errors."""

    code = "MSG_000"
    retryable = False

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for reporting."""
        return {
            'code': self.code,
            'error': self.__class__.__name__,
            'message': self.message,
            'retryable': self.retryable,
            'details': self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class InvalidEncoding(MessengerError, ValueError):
    """Raised when a payload does not decode to valid UTF-8 text."""
    code = "MSG_001"


class InvalidRecipient(MessengerError, ValueError):
    """Raised when the recipient is the null identity or malformed."""
    code = "MSG_002"


class SelfMessage(MessengerError, ValueError):
    """Raised when sender and recipient are the same identity."""
    code = "MSG_003"


class BackendUnavailable(MessengerError):
    """
    Raised when the encryption backend or its relay cannot be reached.

    Safe to retry for encrypt and decrypt. Never retried automatically
    for ledger appends.
    """
    code = "MSG_004"
    retryable = True


class Unauthorized(MessengerError):
    """Raised when a capability does not authorize the requested handles."""
    code = "MSG_005"


class InvalidProof(MessengerError):
    """Raised when an input proof does not bind the handle to the context."""
    code = "MSG_006"


class CapabilityExpired(MessengerError):
    """Raised when a capability's validity window has elapsed."""
    code = "MSG_007"


class CapabilityStateError(MessengerError):
    """Raised on an illegal capability state transition."""
    code = "MSG_008"


class IndexOutOfBounds(MessengerError, IndexError):
    """Raised when reading past the end of an inbox or outbox."""
    code = "MSG_009"
