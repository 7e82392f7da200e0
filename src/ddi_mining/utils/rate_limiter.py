"""
Rate Limiter

Sliding window rate limiting for outbound source calls. One limiter is owned
by each API client; an optional session-wide limiter is shared by all of them.
"""

import logging
import threading
import time
from collections import deque
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Thread-safe sliding window rate limiter.

    Besides the per-window cap, an optional ``budget`` bounds the total number
    of calls over the limiter's lifetime (used for the session-wide cap).
    """

    def __init__(
        self,
        requests_per_minute: int = 60,
        budget: Optional[int] = None,
        name: str = "default",
        window_seconds: float = 60.0,
    ):
        """
        Initialize rate limiter.

        Args:
            requests_per_minute: Max requests per window
            budget: Max total requests (optional)
            name: Name for logging purposes
            window_seconds: Window length, 60s unless overridden
        """
        if requests_per_minute < 1:
            raise ValueError(f"requests_per_minute must be >= 1, got: {requests_per_minute}")

        self.requests_per_minute = requests_per_minute
        self.budget = budget
        self.name = name
        self.window_seconds = window_seconds

        self._window: deque = deque()
        self._used = 0
        self._lock = threading.Lock()

    def acquire(self, timeout: float = 60.0, cancel_event: Optional[threading.Event] = None) -> bool:
        """
        Block until a slot is available.

        Args:
            timeout: Max seconds to wait
            cancel_event: Abort waiting once this event is set

        Returns:
            True if acquired, False on timeout, cancellation or exhausted budget
        """
        deadline = time.monotonic() + timeout

        while True:
            if cancel_event is not None and cancel_event.is_set():
                return False

            acquired, wait_time = self._try_acquire()
            if acquired:
                return True
            if wait_time is None:
                logger.warning(f"[{self.name}] Call budget exhausted ({self.budget})")
                return False

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(f"[{self.name}] Rate limiter timeout after {timeout}s")
                return False

            sleep_for = min(wait_time, remaining, 0.5)
            if cancel_event is not None:
                cancel_event.wait(sleep_for)
            else:
                time.sleep(sleep_for)

    def _try_acquire(self):
        """
        Non-blocking attempt.

        Returns:
            (acquired, seconds_until_next_slot); wait is None when the budget is spent
        """
        now = time.monotonic()
        with self._lock:
            if self.budget is not None and self._used >= self.budget:
                return False, None

            window_start = now - self.window_seconds
            while self._window and self._window[0] <= window_start:
                self._window.popleft()

            if len(self._window) >= self.requests_per_minute:
                return False, max(0.0, self._window[0] + self.window_seconds - now)

            self._window.append(now)
            self._used += 1
            return True, 0.0

    def remaining_budget(self) -> Optional[int]:
        """Calls left before the budget is exhausted, None when unbounded."""
        if self.budget is None:
            return None
        with self._lock:
            return max(0, self.budget - self._used)

    def reset(self):
        with self._lock:
            self._window.clear()
            self._used = 0

    def get_status(self) -> Dict:
        """Get current rate limiter status."""
        now = time.monotonic()
        with self._lock:
            in_window = sum(1 for t in self._window if t > now - self.window_seconds)
            used = self._used

        return {
            "name": self.name,
            "window_used": in_window,
            "window_limit": self.requests_per_minute,
            "total_used": used,
            "budget": self.budget,
        }
