"""
Retry policy shared by the fetch-test, fetch-progress and submit paths.

Only TransientError is retried. Auth failures, conflicts, not-found and
other rejections propagate on the first attempt.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from .errors import TransientError

T = TypeVar("T")


class Backoff(str, Enum):
    """How the wait grows between attempts."""

    FIXED = "fixed"  # base, base, base
    LINEAR = "linear"  # base, 2*base, 3*base
    EXPONENTIAL = "exponential"  # base, 2*base, 4*base


@dataclass(frozen=True)
class RetryPolicy:
    """Max attempts plus a backoff schedule for one call site."""

    max_attempts: int = 3
    base_delay: float = 1.0
    backoff: Backoff = Backoff.EXPONENTIAL
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the failed ``attempt`` (1-based)."""
        if self.backoff == Backoff.FIXED:
            delay = self.base_delay
        elif self.backoff == Backoff.LINEAR:
            delay = self.base_delay * attempt
        else:
            delay = self.base_delay * (2 ** (attempt - 1))
        return min(max(delay, 0.0), self.max_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "request",
    ) -> T:
        """
        Await ``operation`` until it succeeds or attempts run out.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            description: Label used in log messages

        Returns:
            Whatever ``operation`` returns

        Raises:
            TransientError: The last transient failure once attempts are exhausted
            AttemptApiError: Any non-retryable failure, immediately
        """
        attempts = max(1, self.max_attempts)
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except TransientError as e:
                if attempt >= attempts:
                    logger.error(f"{description} failed after {attempts} attempts: {e}")
                    raise
                wait_time = self.delay_for(attempt)
                logger.warning(
                    f"{description} failed on attempt {attempt}/{attempts}: {e}. "
                    f"Retrying in {wait_time:g}s..."
                )
                await asyncio.sleep(wait_time)
