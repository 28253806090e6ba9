"""
Countdown clock for a test attempt.

The clock is the sole timing authority. It does not own a timer itself:
the session manager calls tick() once per second from a cancellable task.
"""

from __future__ import annotations

from typing import Callable

from loguru import logger


class Clock:
    """
    Monotonically decreasing seconds-remaining counter.

    - tick() removes exactly one second while running
    - set_remaining() is the only way to set an absolute value
    - reaching zero fires ``on_expired`` exactly once
    - after expiry or stop() the clock is frozen for good
    """

    def __init__(
        self,
        duration_seconds: int,
        on_expired: Callable[[], None] | None = None,
        on_minute_boundary: Callable[[int], None] | None = None,
    ):
        """
        Args:
            duration_seconds: Full attempt duration, fixed at start
            on_expired: Called once when the remaining time hits zero
            on_minute_boundary: Called with the remaining seconds whenever a
                tick lands on a whole minute (and time is left)
        """
        self.duration_seconds = max(0, int(duration_seconds))
        self._remaining = self.duration_seconds
        self._expired = False
        self._stopped = False
        self._on_expired = on_expired
        self._on_minute_boundary = on_minute_boundary

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def running(self) -> bool:
        return not (self._expired or self._stopped)

    @property
    def elapsed(self) -> int:
        return max(self.duration_seconds - self._remaining, 0)

    def tick(self) -> None:
        """Decrement by one second. No effect once expired or stopped."""
        if not self.running:
            return
        if self._remaining > 0:
            self._remaining -= 1
        if self._remaining == 0:
            self._expire()
        elif self._remaining % 60 == 0 and self._on_minute_boundary:
            self._on_minute_boundary(self._remaining)

    def set_remaining(self, seconds: int) -> None:
        """Set the absolute remaining time. Ignored once frozen."""
        if not self.running:
            logger.debug(f"Clock is frozen, ignoring set_remaining({seconds})")
            return
        self._remaining = max(0, int(seconds))
        if self._remaining == 0:
            self._expire()

    def stop(self) -> None:
        """Freeze the clock (attempt submitted or torn down)."""
        self._stopped = True

    def _expire(self) -> None:
        if self._expired:
            return
        self._expired = True
        logger.info("Attempt clock expired")
        if self._on_expired:
            self._on_expired()


def format_time(seconds) -> str:
    """Render seconds as ``M:SS``; invalid input renders as ``0:00``."""
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)) or seconds != seconds:
        return "0:00"
    seconds = max(int(seconds), 0)
    minutes, remaining_seconds = divmod(seconds, 60)
    return f"{minutes}:{remaining_seconds:02d}"
