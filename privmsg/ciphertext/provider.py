"""
Service Provider

Explicitly constructed handle to the ciphertext service with lazy,
one-time initialisation. Replaces a module-level SDK singleton:

- get() builds the service on first use, concurrent callers share one
  initialisation
- reset() drops the instance for tests or reconnection
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from ..config import MessengerConfig
from ..errors import BackendUnavailable, MessengerError
from .backend import LocalFheBackend
from .relayer import LocalRelayer
from .service import TRANSPORT_ERRORS, CiphertextService

logger = logging.getLogger(__name__)

ServiceFactory = Callable[[], Union[CiphertextService, Awaitable[CiphertextService]]]


class ServiceProvider:
    """
    Lazily initialised ciphertext service handle.

    Example:
        provider = ServiceProvider(lambda: connect_local(relayer, config))
        service = await provider.get()
    """

    def __init__(self, factory: ServiceFactory):
        self._factory = factory
        self._service: Optional[CiphertextService] = None
        self._lock = asyncio.Lock()

    @classmethod
    def for_service(cls, service: CiphertextService) -> 'ServiceProvider':
        """Wrap an already constructed service."""
        return cls(lambda: service)

    @property
    def is_initialized(self) -> bool:
        return self._service is not None

    def peek(self) -> Optional[CiphertextService]:
        """Get the service if initialised, without initialising it."""
        return self._service

    async def get(self) -> CiphertextService:
        """
        Get the service, initialising it on first use.

        Raises:
            BackendUnavailable: If the relay cannot be reached
            MessengerError: If initialisation fails for another reason
        """
        if self._service is not None:
            return self._service

        async with self._lock:
            if self._service is None:
                self._service = await self._initialize()
        return self._service

    def reset(self) -> None:
        """Drop the current instance; the next get() initialises again."""
        self._service = None

    async def _initialize(self) -> CiphertextService:
        try:
            result = self._factory()
            if inspect.isawaitable(result):
                result = await result
        except MessengerError:
            raise
        except TRANSPORT_ERRORS as exc:
            raise BackendUnavailable(
                "Cannot connect to the relayer. Check the network connection.",
                details={'cause': str(exc)},
            ) from exc
        except Exception as exc:
            raise MessengerError(f"Failed to initialize ciphertext service: {exc}") from exc

        logger.info("Ciphertext service initialized (width=%d bits)", result.width_bits)
        return result


async def connect_local(relayer: LocalRelayer,
                        config: Optional[MessengerConfig] = None) -> CiphertextService:
    """Check the relay is reachable and build a service for it."""
    cfg = config or MessengerConfig()
    await relayer.ping()
    return CiphertextService.from_config(relayer, cfg)


def create_local_provider(
    config: Optional[MessengerConfig] = None,
    backend: Optional[LocalFheBackend] = None,
    latency: float = 0.0
) -> ServiceProvider:
    """Build a provider over a local backend and relay."""
    cfg = config or MessengerConfig()
    backend = backend or LocalFheBackend(
        chain_id=cfg.backend.chain_id,
        verifying_contract=cfg.backend.verifying_contract,
        strict_acl=cfg.backend.strict_acl,
    )
    relayer = LocalRelayer(backend, latency=latency)
    return ServiceProvider(lambda: connect_local(relayer, cfg))
