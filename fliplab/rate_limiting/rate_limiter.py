"""
Rate limiter for the FlipLab search service.

Counts requests per client key in fixed windows and rejects requests once a
client has used up its window.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class _Window:
    started_at: float
    count: int = 0


class RateLimiter:
    """
    Fixed-window rate limiter keyed by client (usually the client IP).

    Attributes:
        max_requests: Requests allowed per client per window
        window_seconds: Window length in seconds
        windows: Current window for each client key
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter with configuration.

        Args:
            max_requests: Requests allowed per window (default: 100)
            window_seconds: Window length in seconds (default: 15 minutes)
            clock: Monotonic time source, replaceable in tests
        """
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.windows: Dict[str, _Window] = {}
        self._clock = clock

    def consume(self, key: str) -> bool:
        """
        Record one request for ``key`` if it is under the limit.

        Returns:
            True if the request is allowed, False if the limit was reached
        """
        now = self._clock()
        window = self._current_window(key, now)
        if window.count >= self.max_requests:
            return False
        window.count += 1
        return True

    def remaining(self, key: str) -> int:
        """Requests ``key`` may still make in its current window."""
        window = self._current_window(key, self._clock())
        return max(0, self.max_requests - window.count)

    def retry_after(self, key: str) -> float:
        """Seconds until ``key``'s window resets."""
        now = self._clock()
        window = self._current_window(key, now)
        return max(0.0, window.started_at + self.window_seconds - now)

    def reset(self, key: str = None) -> None:
        """Forget one client's window, or every window when ``key`` is None."""
        if key is None:
            self.windows.clear()
        else:
            self.windows.pop(key, None)

    def _current_window(self, key: str, now: float) -> _Window:
        window = self.windows.get(key)
        if window is None or now - window.started_at >= self.window_seconds:
            # Drop expired windows so idle clients do not accumulate
            self._prune(now)
            window = _Window(started_at=now)
            self.windows[key] = window
        return window

    def _prune(self, now: float) -> None:
        expired = [
            key for key, window in self.windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self.windows[key]
