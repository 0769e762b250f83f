"""
Messenger Orchestrator

Composes codec, ciphertext service, capability manager and ledger into
the user-facing operations:

- send(recipient, text): encode -> encrypt -> append
- fetch_inbox(): cheap, ledger-only listing; handles stay opaque
- decrypt(records): one capability and one signature for the whole batch

Listing never touches the backend; decryption is an explicit, batchable
second step.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..capability.manager import CapabilityManager
from ..ciphertext.provider import ServiceProvider
from ..ciphertext.service import CiphertextService
from ..ciphertext.types import HandleContextPair
from ..codec.message_codec import MessageCodec
from ..config import MessengerConfig
from ..errors import (
    BackendUnavailable,
    CapabilityExpired,
    InvalidEncoding,
    Unauthorized,
)
from ..identity.wallet import Wallet
from ..integration.event_logger import EventLogger
from ..ledger.message_ledger import Box, MessageLedger, MessageRecord

logger = logging.getLogger(__name__)

ENCRYPTED_PLACEHOLDER = "[Encrypted]"
UNREADABLE_PLACEHOLDER = "[Unreadable]"


@dataclass(frozen=True)
class DecryptionBatch:
    """
    Outcome of one batched redemption.

    plaintexts: handle -> decoded text
    still_encrypted: handles the backend did not return
    errors: handle -> decode error, for payloads that are not valid text
    """
    capability_id: Optional[str]
    plaintexts: Dict[str, str] = field(default_factory=dict)
    still_encrypted: Tuple[str, ...] = ()
    errors: Dict[str, InvalidEncoding] = field(default_factory=dict)

    def __contains__(self, handle: str) -> bool:
        return handle in self.plaintexts

    def get(self, handle: str) -> Optional[str]:
        return self.plaintexts.get(handle)

    @property
    def is_complete(self) -> bool:
        return not self.still_encrypted and not self.errors


@dataclass(frozen=True)
class InboxMessage:
    """Presentation-neutral view of one inbox entry."""
    sender: str
    timestamp: int
    handle: str
    content: Optional[str]
    encrypted: bool
    error: Optional[InvalidEncoding] = None

    @property
    def display_content(self) -> str:
        if self.error is not None:
            return UNREADABLE_PLACEHOLDER
        return ENCRYPTED_PLACEHOLDER if self.encrypted else self.content


class Messenger:
    """
    One identity's messenger client.

    Example:
        bob_client = Messenger(ledger, provider, bob_wallet)
        records = bob_client.fetch_inbox()
        batch = await bob_client.decrypt(records)
        print(batch.get(records[0].handle))
    """

    def __init__(
        self,
        ledger: MessageLedger,
        provider: ServiceProvider,
        wallet: Wallet,
        config: Optional[MessengerConfig] = None,
        event_logger: Optional[EventLogger] = None,
        capability_manager: Optional[CapabilityManager] = None,
        clock: Callable[[], float] = time.time
    ):
        self._config = config or MessengerConfig()
        self._ledger = ledger
        self._provider = provider
        self._wallet = wallet
        self._audit = event_logger
        self._codec = MessageCodec(self._config.width_bits)
        self._capabilities = capability_manager or CapabilityManager(
            chain_id=self._config.backend.chain_id,
            verifying_contract=self._config.backend.verifying_contract,
            validity_days=self._config.backend.validity_days,
            clock=clock,
        )

    @property
    def address(self) -> str:
        return self._wallet.address

    @property
    def context_id(self) -> str:
        return self._ledger.context_id

    @property
    def codec(self) -> MessageCodec:
        return self._codec

    async def _service(self) -> CiphertextService:
        try:
            return await self._provider.get()
        except BackendUnavailable:
            self._log_backend_unavailable("initialize")
            raise

    def _log_backend_unavailable(self, operation: str) -> None:
        if self._audit:
            self._audit.log_backend_unavailable(self.address, operation)

    # ========================================================================
    # Send
    # ========================================================================

    async def send(self, recipient: str, text: str) -> MessageRecord:
        """
        Encrypt a message and append it to the ledger.

        Nothing is written to the ledger if encoding or encryption fails.
        If the append itself is rejected, the minted handle is orphaned.
        The append is never retried here.

        Raises:
            BackendUnavailable: If the backend cannot be reached (retryable)
            InvalidRecipient: If recipient is null or malformed
            SelfMessage: If recipient is the sender
        """
        if not self._codec.fits(text):
            logger.info("Message exceeds %d bytes and will be truncated", self._codec.max_bytes)
        payload = self._codec.encode(text)

        service = await self._service()
        try:
            encrypted = await service.encrypt(self.context_id, self.address, payload)
        except BackendUnavailable:
            self._log_backend_unavailable("encrypt")
            raise

        record = self._ledger.append(self.address, recipient, encrypted.handle, encrypted.proof)
        if self._audit:
            self._audit.log_message_send(self.address, record.recipient, record.handle)
        logger.debug("Sent message %s", record.handle[:18])
        return record

    # ========================================================================
    # Listing
    # ========================================================================

    def fetch_inbox(self, identity: Optional[str] = None) -> List[MessageRecord]:
        """List inbox records; content stays encrypted."""
        identity = identity or self.address
        records = list(self._ledger.records(identity, Box.INBOX))
        if self._audit:
            self._audit.log_inbox_fetch(identity, len(records))
        return records

    def fetch_outbox(self, identity: Optional[str] = None) -> List[MessageRecord]:
        """List outbox records; content stays encrypted."""
        return list(self._ledger.records(identity or self.address, Box.OUTBOX))

    # ========================================================================
    # Decryption
    # ========================================================================

    async def decrypt(self, records: Iterable[MessageRecord]) -> DecryptionBatch:
        """
        Decrypt a batch of records with a single capability.

        Either the redemption succeeds as a whole (possibly with some
        handles still encrypted) or nothing in the batch is decoded.

        Raises:
            CapabilityExpired: If the capability expired before redemption
                or the backend reports it expired
            Unauthorized: If the backend rejects the capability
            BackendUnavailable: If the backend cannot be reached (retryable)
        """
        handles: List[str] = []
        for record in records:
            if record.handle not in handles:
                handles.append(record.handle)
        if not handles:
            return DecryptionBatch(capability_id=None)

        service = await self._service()

        capability = self._capabilities.issue([self.context_id])
        if self._audit:
            self._audit.log_capability_issued(
                self.address, capability.capability_id,
                len(capability.contexts), capability.validity_days,
            )
        pairs = [HandleContextPair(handle, self.context_id) for handle in handles]
        try:
            self._capabilities.request_signature(capability, self._wallet)
            if self._audit:
                self._audit.log_capability_signed(self.address, capability.capability_id)
            self._capabilities.ensure_redeemable(capability)
            payloads = await service.decrypt(capability, pairs)
        except CapabilityExpired:
            self._capabilities.mark_expired(capability)
            if self._audit:
                self._audit.log_capability_expired(self.address, capability.capability_id)
            raise
        except Unauthorized as exc:
            if self._audit:
                self._audit.log_decrypt_denied(self.address, exc)
            raise
        except BackendUnavailable:
            self._log_backend_unavailable("decrypt")
            raise
        self._capabilities.mark_redeemed(capability)

        plaintexts: Dict[str, str] = {}
        errors: Dict[str, InvalidEncoding] = {}
        for handle in handles:
            if handle not in payloads:
                continue
            try:
                plaintexts[handle] = self._codec.decode(payloads[handle])
            except InvalidEncoding as exc:
                logger.warning("Payload for %s is not valid text: %s", handle[:18], exc.message)
                errors[handle] = exc

        still_encrypted = tuple(h for h in handles if h not in payloads)
        if self._audit:
            self._audit.log_decrypt(
                self.address, capability.capability_id, len(handles), len(payloads)
            )
        return DecryptionBatch(
            capability_id=capability.capability_id,
            plaintexts=plaintexts,
            still_encrypted=still_encrypted,
            errors=errors,
        )

    async def decrypt_inbox(self) -> List[InboxMessage]:
        """Fetch the inbox and decrypt every entry in one batch."""
        records = self.fetch_inbox()
        batch = await self.decrypt(records)
        return self.inbox_view(records, batch)

    async def decrypt_message(self, index: int) -> InboxMessage:
        """
        Decrypt a single inbox entry.

        A payload that is not valid text comes back with its error set
        and encrypted False.

        Raises:
            IndexOutOfBounds: If the index is outside the inbox
        """
        record = self._ledger.record_at(self.address, Box.INBOX, index)
        batch = await self.decrypt([record])
        return self.inbox_view([record], batch)[0]

    @staticmethod
    def inbox_view(records: Sequence[MessageRecord],
                   batch: Optional[DecryptionBatch] = None) -> List[InboxMessage]:
        """
        Merge records with decryption results.

        Entries the backend did not return are marked encrypted, never
        shown as empty text. Payloads that came back but failed to decode
        carry their error instead.
        """
        view = []
        for record in records:
            text = batch.get(record.handle) if batch else None
            error = batch.errors.get(record.handle) if batch else None
            view.append(InboxMessage(
                sender=record.sender,
                timestamp=record.timestamp,
                handle=record.handle,
                content=text,
                encrypted=text is None and error is None,
                error=error,
            ))
        return view
