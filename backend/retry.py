"""
Bounded retry with linear backoff for async operations.

Used by the OAuth bridge around token exchange, profile fetch and credential
persistence.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhausted(Exception):
    """Every attempt failed. The last error is chained as __cause__."""

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        super().__init__(f"{label} failed after {attempts} attempt(s): {last_error}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error


def linear_backoff(base_seconds: float) -> Callable[[int], float]:
    """Delay of ``base * n`` seconds after the n-th failed attempt."""
    def _delay(attempt: int) -> float:
        return base_seconds * attempt
    return _delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    backoff: Optional[Callable[[int], float]] = None,
    retry_on: tuple = (Exception,),
    label: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``operation()`` up to ``attempts`` times.

    Exceptions outside ``retry_on`` propagate immediately. No sleep happens
    after the final attempt.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    backoff = backoff or linear_backoff(1.0)
    last_error: Optional[BaseException] = None

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            last_error = e
            if attempt < attempts:
                delay = backoff(attempt)
                logger.warning("%s attempt %d/%d failed: %s (retrying in %.1fs)",
                               label, attempt, attempts, e, delay)
                await sleep(delay)
            else:
                logger.error("%s attempt %d/%d failed: %s", label, attempt, attempts, e)

    raise RetryExhausted(label, attempts, last_error) from last_error
