"""
Caller-side retry for transient backend failures.

Only BackendUnavailable is retried. Encrypt and decrypt are safe to
retry; a full send is not, because the ledger has no idempotency key and
a lost response may hide an accepted append.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, TypeVar

from .errors import BackendUnavailable

logger = logging.getLogger(__name__)

T = TypeVar('T')

MAX_RETRIES = 3
BASE_DELAY = 0.5  # seconds
MAX_DELAY = 5.0


async def backoff(attempt: int, base_delay: float = BASE_DELAY,
                  max_delay: float = MAX_DELAY) -> None:
    """
    Exponential backoff with full jitter.

    Sleep = random_between(0, min(max_delay, base_delay * 2 ** attempt))
    """
    cap = min(max_delay, base_delay * (2 ** attempt))
    await asyncio.sleep(random.uniform(0, cap))


async def retry_transient(
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    **kwargs: Any
) -> T:
    """
    Await operation(*args, **kwargs), retrying on BackendUnavailable.

    Any other error is raised immediately. After max_retries the last
    BackendUnavailable is re-raised.
    """
    retries = 0
    while True:
        try:
            return await operation(*args, **kwargs)
        except BackendUnavailable as exc:
            if retries >= max_retries:
                raise
            logger.info("Backend unavailable (%s), retry %d/%d", exc.message, retries + 1, max_retries)
            await backoff(retries, base_delay=base_delay)
            retries += 1
