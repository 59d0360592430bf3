"""Retry combinator for flaky external calls.

Sleeps are awaited on the calling task, so a backing-off invocation never
blocks other pipeline runs on the same event loop.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """All attempts failed. Carries the last underlying error."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException]):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def exponential_backoff(attempt: int) -> float:
    """Seconds to wait after failed attempt ``attempt`` (0-based): 1, 2, 4..."""
    return float(2 ** attempt)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    backoff: Callable[[int], float] = exponential_backoff,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """Await ``fn()`` until it succeeds or ``max_attempts`` are spent.

    Raises:
        RetryExhaustedError: after the final failed attempt
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    last_error: Optional[Exception] = None
    for attempt in range(max_attempts):
        try:
            return await fn()
        except Exception as e:
            last_error = e
            logger.error(f"{label} attempt {attempt + 1}/{max_attempts} failed: {e}")
            if attempt < max_attempts - 1:
                delay = backoff(attempt)
                logger.info(f"{label}: retrying in {delay:.0f}s")
                await sleep(delay)

    raise RetryExhaustedError(
        f"{label} failed after {max_attempts} attempts: {last_error}",
        attempts=max_attempts,
        last_error=last_error,
    )
