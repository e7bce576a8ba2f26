"""
Bounded retry with linear or exponential backoff.

'RetryPolicy' wraps a single awaitable attempt. Errors whose type is listed in
'retry_on' are retried until 'max_retries' additional attempts have been made;
any other error propagates on the first occurrence. The last error is always
re-raised unchanged, so callers see the same exception type they would have
seen without the policy.

Callers that re-use a client message id across attempts get idempotent retries
for free: the policy never rebuilds the request, it only calls 'attempt' again.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from chat_lifecycle.errors import NetworkError

T = TypeVar("T")


class RetryPolicy:
    """
    Retry configuration plus the loop that applies it.

    Attributes:
        max_retries: Retries after the first attempt. Total attempts are at most 'max_retries + 1'.
        base_delay: Delay in seconds before the first retry.
        exponential_backoff: Double the delay on every retry when True, grow it linearly otherwise.
        retry_on: Exception types that are considered transient.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        exponential_backoff: bool = True,
        retry_on: tuple[type[BaseException], ...] = (NetworkError,),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.exponential_backoff = exponential_backoff
        self.retry_on = retry_on
        self._sleep = sleep

    def compute_delay(self, retry_number: int) -> float:
        """Delay before retry 'retry_number' (0-based)."""
        if self.exponential_backoff:
            return self.base_delay * (2**retry_number)
        return self.base_delay * (retry_number + 1)

    async def retry_operation(self, attempt: Callable[[], Awaitable[T]], label: str) -> T:
        retry_number = 0
        while True:
            try:
                return await attempt()
            except self.retry_on as exc:
                if retry_number >= self.max_retries:
                    logger.error(f"{label} failed after {retry_number + 1} attempt(s): {exc}")
                    raise
                delay = self.compute_delay(retry_number)
                logger.warning(
                    f"{label} attempt {retry_number + 1} failed ({exc}); retrying in {delay:.2f}s "
                    f"({retry_number + 1}/{self.max_retries})"
                )
                await self._sleep(delay)
                retry_number += 1
