"""
Relay Transport

Async network boundary between the client-side adapter and the
encryption backend. Every call suspends at the boundary; a relay that is
offline raises ConnectionError exactly like a dropped connection.
"""

import asyncio
import logging
from typing import Dict

from .backend import LocalFheBackend
from .sealing import SealedPayload
from .types import DecryptionRequest, EncryptedInput

logger = logging.getLogger(__name__)


class LocalRelayer:
    """
    Relay to an in-process backend with simulated latency and outages.

    Args:
        backend: The backend to forward calls to
        latency: Seconds each round trip takes
        online: Whether the relay is reachable
    """

    def __init__(self, backend: LocalFheBackend, latency: float = 0.0, online: bool = True):
        self._backend = backend
        self._latency = latency
        self._online = online

    @property
    def backend(self) -> LocalFheBackend:
        return self._backend

    @property
    def online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        self._online = online

    async def _round_trip(self, operation: str) -> None:
        await asyncio.sleep(self._latency)
        if not self._online:
            logger.warning("Relay unreachable during %s", operation)
            raise ConnectionError(f"Relayer unreachable ({operation})")

    async def ping(self) -> None:
        await self._round_trip("ping")

    async def encrypt_input(self, context: str, owner: str, payload: int,
                            width_bits: int) -> EncryptedInput:
        await self._round_trip("encrypt")
        return self._backend.create_input(context, owner, payload, width_bits)

    async def user_decrypt(self, request: DecryptionRequest) -> Dict[str, SealedPayload]:
        await self._round_trip("user_decrypt")
        return self._backend.user_decrypt(request)
