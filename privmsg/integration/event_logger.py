"""
Event Logger Module

Security audit trail for the messenger. Every security-relevant action
is recorded as a compact JSON transaction in a hash-chained log.

Features:
- Message send and inbox fetch events
- Capability issue / sign / expiry events
- Decryption outcomes (success, partial, denied)
- Backend outages
- Privacy-preserving identity hashes (SHA-256), never raw addresses
- Tamper-evident log via the hash chain
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..errors import MessengerError
from ..ledger.chain import Block, HashChain

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

EVENT_VERSION = "1.0"
DEFAULT_BATCH_SIZE = 10


# ============================================================================
# Privacy Functions
# ============================================================================

def get_identity_hash(identity: str) -> str:
    """
    Compute privacy-preserving hash of an identity.

    Identities are never written to the audit log in plaintext, while
    events of the same identity can still be correlated.
    """
    return hashlib.sha256(identity.lower().encode('utf-8')).hexdigest()


def get_identity_hash_short(identity: str) -> str:
    """First 16 characters of the identity hash, for display."""
    return get_identity_hash(identity)[:16]


# ============================================================================
# Event Types
# ============================================================================

class EventType(Enum):
    # Messaging events
    MESSAGE_SEND = "message_send"
    INBOX_FETCH = "inbox_fetch"

    # Capability events
    CAPABILITY_ISSUED = "capability_issued"
    CAPABILITY_SIGNED = "capability_signed"
    CAPABILITY_EXPIRED = "capability_expired"

    # Decryption events
    DECRYPT_SUCCESS = "decrypt_success"
    DECRYPT_PARTIAL = "decrypt_partial"
    DECRYPT_DENIED = "decrypt_denied"

    # Backend events
    BACKEND_UNAVAILABLE = "backend_unavailable"

    # System events
    SYSTEM_START = "system_start"


# ============================================================================
# Event Structure
# ============================================================================

@dataclass
class SecurityEvent:
    """A security event; identities are stored hashed."""
    event_type: EventType
    identity_hash: str
    timestamp: int
    details: Dict[str, Any] = field(default_factory=dict)

    def to_transaction(self) -> str:
        """Convert event to a compact chain transaction."""
        return json.dumps({
            'version': EVENT_VERSION,
            'type': self.event_type.value,
            'user': self.identity_hash[:16],
            'time': self.timestamp,
            'iso_time': datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat(),
            'details': self.details,
        }, separators=(',', ':'))

    @classmethod
    def from_transaction(cls, tx_str: str) -> 'SecurityEvent':
        data = json.loads(tx_str)
        return cls(
            event_type=EventType(data['type']),
            identity_hash=data['user'],
            timestamp=data['time'],
            details=data.get('details', {}),
        )

    def __str__(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp, tz=timezone.utc)
        return (
            f"[{dt.strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{self.event_type.value} | "
            f"user:{self.identity_hash[:8]}..."
        )


# ============================================================================
# Event Logger
# ============================================================================

class EventLogger:
    """
    Hash-chain backed audit logger.

    Events accumulate as pending transactions and are sealed into a block
    once batch_size is reached (auto_seal) or on flush().
    """

    def __init__(
        self,
        chain: Optional[HashChain] = None,
        auto_seal: bool = True,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], float] = time.time
    ):
        self._chain = chain or HashChain(genesis_label="Genesis Block - PrivMsg Audit Log")
        self._auto_seal = auto_seal
        self._batch_size = batch_size
        self._clock = clock
        self._callbacks: List[Callable[[SecurityEvent], None]] = []

        self._record(EventType.SYSTEM_START, "system", {'node': 'privmsg'})

    def _record(self, event_type: EventType, identity: str,
                details: Optional[Dict[str, Any]] = None) -> SecurityEvent:
        identity_hash = "system" if identity == "system" else get_identity_hash(identity)
        event = SecurityEvent(
            event_type=event_type,
            identity_hash=identity_hash,
            timestamp=int(self._clock()),
            details=details or {},
        )
        pending = self._chain.add_transaction(event.to_transaction())

        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception:
                logger.exception("Audit callback failed for %s", event_type.value)

        if self._auto_seal and pending >= self._batch_size:
            self.flush()
        return event

    def add_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        """Add a callback to be notified of new events."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[SecurityEvent], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    # ========================================================================
    # Messaging Events
    # ========================================================================

    def log_message_send(self, sender: str, recipient: str, handle: str) -> SecurityEvent:
        return self._record(EventType.MESSAGE_SEND, sender, {
            'to': get_identity_hash_short(recipient),
            'msg_id': handle[2:18],
        })

    def log_inbox_fetch(self, identity: str, count: int) -> SecurityEvent:
        return self._record(EventType.INBOX_FETCH, identity, {'count': count})

    # ========================================================================
    # Capability Events
    # ========================================================================

    def log_capability_issued(self, identity: str, capability_id: str,
                              contexts: int, validity_days: int) -> SecurityEvent:
        return self._record(EventType.CAPABILITY_ISSUED, identity, {
            'capability': capability_id,
            'contexts': contexts,
            'days': validity_days,
        })

    def log_capability_signed(self, identity: str, capability_id: str) -> SecurityEvent:
        return self._record(EventType.CAPABILITY_SIGNED, identity, {'capability': capability_id})

    def log_capability_expired(self, identity: str, capability_id: str) -> SecurityEvent:
        return self._record(EventType.CAPABILITY_EXPIRED, identity, {'capability': capability_id})

    # ========================================================================
    # Decryption Events
    # ========================================================================

    def log_decrypt(self, identity: str, capability_id: str,
                    requested: int, decrypted: int) -> SecurityEvent:
        """
        Log a redemption outcome.

        A batch where some handles were not returned is logged as partial.
        """
        event_type = EventType.DECRYPT_SUCCESS if decrypted == requested else EventType.DECRYPT_PARTIAL
        return self._record(event_type, identity, {
            'capability': capability_id,
            'requested': requested,
            'decrypted': decrypted,
        })

    def log_decrypt_denied(self, identity: str, error: MessengerError) -> SecurityEvent:
        return self._record(EventType.DECRYPT_DENIED, identity, {
            'code': error.code,
            'reason': error.message[:80],
        })

    def log_backend_unavailable(self, identity: str, operation: str) -> SecurityEvent:
        return self._record(EventType.BACKEND_UNAVAILABLE, identity, {'operation': operation})

    # ========================================================================
    # Sealing and Retrieval
    # ========================================================================

    def flush(self) -> Optional[Block]:
        """Seal pending events into a block."""
        if not self._chain.pending_transactions:
            return None
        return self._chain.seal_block()

    @property
    def chain(self) -> HashChain:
        return self._chain

    def get_all_events(self) -> List[SecurityEvent]:
        """All events, sealed first, then pending."""
        transactions = [tx for block in self._chain.chain for tx in block.transactions]
        transactions.extend(self._chain.pending_transactions)
        return [
            SecurityEvent.from_transaction(tx)
            for tx in transactions
            if tx.startswith('{"version"')
        ]

    def get_identity_events(self, identity: str) -> List[SecurityEvent]:
        prefix = get_identity_hash_short(identity)
        return [e for e in self.get_all_events() if e.identity_hash.startswith(prefix)]

    def get_events_by_type(self, event_type: EventType) -> List[SecurityEvent]:
        return [e for e in self.get_all_events() if e.event_type == event_type]

    def verify_integrity(self) -> bool:
        """Verify the integrity of the audit log."""
        try:
            return self._chain.validate_chain()
        except MessengerError:
            return False

    def export_log(self) -> str:
        """Export sealed events as JSON."""
        return self._chain.to_json()

    @classmethod
    def import_log(cls, json_str: str) -> 'EventLogger':
        """Import an audit log from JSON (validated on load)."""
        return cls(chain=HashChain.from_json(json_str))
