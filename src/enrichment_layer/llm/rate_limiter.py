"""
Per-provider admission control.

A fixed-window token bucket: every refill interval the bucket is topped back
up to capacity in one step (no continuous leak). Admission is binary per
window, and a denied admission is reported to the caller, never queued.
"""

import threading
import time
from typing import Callable


class RateLimiter:
    """
    Fixed-window token bucket for one provider.

    try_admit() and remaining() are read-only; consume() is the only call that
    spends a token. The window rolls over lazily whenever any method observes
    that a full interval has elapsed.

    Attributes:
        capacity: Requests allowed per window
        refill_interval_ms: Window length in milliseconds
    """

    def __init__(
        self,
        capacity: int,
        refill_interval_ms: int = 60000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize a full bucket.

        Args:
            capacity: Requests allowed per window (must be >= 1)
            refill_interval_ms: Window length in milliseconds
            clock: Monotonic clock in seconds (injectable for tests)
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if refill_interval_ms < 1:
            raise ValueError("refill_interval_ms must be >= 1")

        self.capacity = capacity
        self.refill_interval_ms = refill_interval_ms
        self._clock = clock
        self._tokens = capacity
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _elapsed_ms(self, now: float) -> float:
        return (now - self._last_refill) * 1000

    def _window_expired(self, now: float) -> bool:
        return self._elapsed_ms(now) >= self.refill_interval_ms

    def _effective_tokens(self, now: float) -> int:
        return self.capacity if self._window_expired(now) else self._tokens

    def try_admit(self) -> bool:
        """Return True if a request may be sent now. Does not spend a token."""
        with self._lock:
            return self._effective_tokens(self._clock()) > 0

    def consume(self) -> None:
        """Spend one token. No-op when the bucket is already empty."""
        with self._lock:
            now = self._clock()
            if self._window_expired(now):
                self._tokens = self.capacity
                self._last_refill = now
            if self._tokens > 0:
                self._tokens -= 1

    def remaining(self) -> int:
        """Tokens left in the current window."""
        with self._lock:
            return self._effective_tokens(self._clock())

    def reset_in_ms(self) -> int:
        """Milliseconds until the bucket refills (0 if a refill is already due)."""
        with self._lock:
            elapsed = self._elapsed_ms(self._clock())
            return max(0, int(self.refill_interval_ms - elapsed))

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"capacity={self.capacity}, "
            f"refill_interval_ms={self.refill_interval_ms})"
        )
