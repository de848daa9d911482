"""Bounded retry with exponential backoff around one provider call.

Only transient failures are retried: HTTP 429/5xx and transport errors
(no response at all). Anything else, a 400 for a bad request or a 404 for an
expired URL, fails on the first attempt so users aren't kept waiting for an
outcome that cannot change.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass, field
from typing import TypeVar

from docgrid.core.config import RetryConfig
from docgrid.core.errors import ProviderError, status_from_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Retry configuration plus the loop that applies it.

    Attributes:
        max_retries: Extra attempts after the first one.
        base_delay: Seconds before the first retry; doubled for each later one.
        retryable_statuses: HTTP statuses considered transient.
        sleep: Awaitable used for backoff (swapped out in tests).
    """

    max_retries: int = RetryConfig.MAX_RETRIES
    base_delay: float = RetryConfig.BASE_DELAY_SECONDS
    retryable_statuses: Collection[int] = field(
        default_factory=lambda: set(RetryConfig.RETRYABLE_STATUS_CODES)
    )
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def is_retryable(self, error: BaseException) -> bool:
        """Decide whether a failure is worth another attempt."""
        if isinstance(error, ProviderError) and error.transport:
            return True
        status = status_from_error(error)
        return status is not None and status in self.retryable_statuses

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the given 0-based attempt."""
        return self.base_delay * (2 ** attempt)

    async def run(self, call: Callable[[], Awaitable[T]]) -> T:
        """Await call(), retrying transient failures.

        The last error is re-raised unchanged once retries are exhausted
        or as soon as a non-retryable error occurs.
        """
        attempt = 0
        while True:
            try:
                return await call()
            except Exception as e:
                if attempt >= self.max_retries or not self.is_retryable(e):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "Transient provider failure, retrying in %.1fs (attempt %d/%d): %s",
                    delay, attempt + 1, self.max_retries, e,
                )
                await self.sleep(delay)
                attempt += 1
