"""
Message Ledger Module

Append-only public store of message records:
- Per-recipient inbox and per-sender outbox, index-stable
- Addressing rules enforced before any grant or storage mutation
- Input proof verification and sender/recipient grants at write time
- MessageSent notifications without ciphertext material
- Every record sealed into a hash-chained log

The ledger owns message records; ciphertext handles and their grants
belong to the encryption backend passed in as access_control.
"""

import json
import logging
import re
import secrets
import time
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..errors import (
    IndexOutOfBounds,
    InvalidProof,
    InvalidRecipient,
    SelfMessage,
)
from ..identity.wallet import NULL_ADDRESS, normalize_address
from .chain import Block, HashChain

logger = logging.getLogger(__name__)

LEDGER_VERSION = "1.0"
_HANDLE_RE = re.compile(r'^0x[0-9a-f]{64}$')


class Box(Enum):
    INBOX = "inbox"
    OUTBOX = "outbox"


# ============================================================================
# Records and Events
# ============================================================================

@dataclass(frozen=True)
class MessageRecord:
    """Immutable record of one sent message."""
    sender: str
    recipient: str
    handle: str
    timestamp: int

    def counterparty(self, box: Box) -> str:
        """The other party as seen from the given box."""
        return self.sender if box is Box.INBOX else self.recipient

    def to_transaction(self) -> str:
        """Convert record to a compact chain transaction."""
        return json.dumps({
            'version': LEDGER_VERSION,
            'type': 'message',
            'from': self.sender,
            'to': self.recipient,
            'handle': self.handle,
            'time': self.timestamp,
        }, separators=(',', ':'))

    @classmethod
    def from_transaction(cls, tx_str: str) -> 'MessageRecord':
        data = json.loads(tx_str)
        return cls(
            sender=data['from'],
            recipient=data['to'],
            handle=data['handle'],
            timestamp=data['time'],
        )


@dataclass(frozen=True)
class BoxEntry:
    """A record as read from one identity's box."""
    counterparty: str
    handle: str
    timestamp: int


@dataclass(frozen=True)
class MessageSent:
    """Notification emitted on every append. Carries no ciphertext."""
    sender: str
    recipient: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {'from': self.sender, 'to': self.recipient, 'timestamp': self.timestamp}


Listener = Callable[[MessageSent], None]


# ============================================================================
# Ledger
# ============================================================================

class MessageLedger:
    """
    Append-only inbox/outbox store.

    Example:
        ledger = MessageLedger(access_control=backend)
        record = ledger.append(alice, bob, encrypted.handle, encrypted.proof)
        assert ledger.read_at(bob, Box.INBOX, 0).counterparty == alice
    """

    def __init__(
        self,
        context_id: Optional[str] = None,
        access_control: Optional[Any] = None,
        clock: Callable[[], float] = time.time,
        batch_size: int = 1
    ):
        """
        Initialize the ledger.

        Args:
            context_id: Address of this messenger instance; random if None
            access_control: Backend exposing verify_input() and allow();
                without one, proofs are not checked and no grants are made
            clock: Wall-clock source for record timestamps
            batch_size: Records per sealed block
        """
        if batch_size < 1:
            raise ValueError("Batch size must be at least 1")
        self._context_id = normalize_address(context_id or '0x' + secrets.token_hex(20))
        self._access_control = access_control
        self._clock = clock
        self._batch_size = batch_size
        self._boxes: Dict[Box, Dict[str, List[MessageRecord]]] = {
            Box.INBOX: defaultdict(list),
            Box.OUTBOX: defaultdict(list),
        }
        self._listeners: List[Listener] = []
        self._chain = HashChain(clock=clock)

    @property
    def context_id(self) -> str:
        return self._context_id

    @property
    def chain(self) -> HashChain:
        return self._chain

    def add_listener(self, listener: Listener) -> None:
        """Subscribe to MessageSent notifications."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ========================================================================
    # Writes
    # ========================================================================

    def append(self, sender: str, recipient: str, handle: str,
               proof: Optional[bytes] = None) -> MessageRecord:
        """
        Append a message from sender to recipient.

        All validation happens before any grant or storage mutation.

        Args:
            sender: Sender address (the caller)
            recipient: Recipient address
            handle: Ciphertext handle minted for this context and sender
            proof: Input proof; required when access control is configured

        Returns:
            The stored record

        Raises:
            InvalidRecipient: If recipient is the null identity or malformed
            SelfMessage: If recipient equals sender
            InvalidProof: If the proof is missing or does not match
        """
        sender = normalize_address(sender)
        try:
            recipient = normalize_address(recipient)
        except ValueError as exc:
            raise InvalidRecipient(str(exc)) from exc
        if recipient == NULL_ADDRESS:
            raise InvalidRecipient("Recipient is the null identity")
        if recipient == sender:
            raise SelfMessage("Cannot send a message to yourself")
        if not isinstance(handle, str) or not _HANDLE_RE.match(handle):
            raise ValueError(f"Malformed ciphertext handle: {handle!r}")

        if self._access_control is not None:
            if proof is None:
                raise InvalidProof("Input proof required")
            self._access_control.verify_input(handle, proof, self._context_id, sender)
            self._access_control.allow(handle, sender, self._context_id)
            self._access_control.allow(handle, recipient, self._context_id)

        record = MessageRecord(
            sender=sender,
            recipient=recipient,
            handle=handle,
            timestamp=int(self._clock()),
        )
        self._boxes[Box.INBOX][recipient].append(record)
        self._boxes[Box.OUTBOX][sender].append(record)

        if self._chain.add_transaction(record.to_transaction()) >= self._batch_size:
            self._chain.seal_block()

        self._emit(MessageSent(sender, recipient, record.timestamp))
        return record

    def seal(self) -> Optional[Block]:
        """Seal pending records into a block, if any."""
        if not self._chain.pending_transactions:
            return None
        return self._chain.seal_block()

    def validate_chain(self) -> bool:
        return self._chain.validate_chain()

    def _emit(self, event: MessageSent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("MessageSent listener failed")

    # ========================================================================
    # Reads
    # ========================================================================

    def _box(self, identity: str, box: Union[Box, str]) -> List[MessageRecord]:
        return self._boxes[Box(box)].get(normalize_address(identity), [])

    def count(self, identity: str, box: Union[Box, str] = Box.INBOX) -> int:
        return len(self._box(identity, box))

    def record_at(self, identity: str, box: Union[Box, str], index: int) -> MessageRecord:
        """
        Get the full record at an index of a box.

        Raises:
            IndexOutOfBounds: If index is negative or >= count
        """
        records = self._box(identity, box)
        if index < 0 or index >= len(records):
            raise IndexOutOfBounds(
                f"Index {index} out of bounds for {Box(box).value} of size {len(records)}",
                details={'index': index, 'count': len(records)},
            )
        return records[index]

    def read_at(self, identity: str, box: Union[Box, str], index: int) -> BoxEntry:
        """Read {counterparty, handle, timestamp} at an index of a box."""
        record = self.record_at(identity, box, index)
        return BoxEntry(
            counterparty=record.counterparty(Box(box)),
            handle=record.handle,
            timestamp=record.timestamp,
        )

    def records(self, identity: str, box: Union[Box, str] = Box.INBOX) -> Tuple[MessageRecord, ...]:
        """Snapshot of all records in a box, in insertion order."""
        return tuple(self._box(identity, box))

    def list_handles(self, identity: str, box: Union[Box, str] = Box.INBOX) -> Tuple[str, ...]:
        """
        Snapshot of all handles in a box, in insertion order.

        The tuple is taken at call time and does not reflect later appends.
        """
        return tuple(record.handle for record in self._box(identity, box))
