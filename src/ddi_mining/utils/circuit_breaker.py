"""
Circuit Breaker

Stops calling a source after repeated failures so one unhealthy upstream does
not stall every drug in a job.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"          # Normal operation
    OPEN = "open"              # Failing, reject requests
    HALF_OPEN = "half_open"    # Probing recovery


@dataclass
class CircuitBreaker:
    """
    Per-source circuit breaker.

    Usage:
        breaker = CircuitBreaker(name="openfda")

        if not breaker.allow_request():
            raise ServiceUnavailableError("openfda circuit open")

        try:
            result = call_api()
            breaker.record_success()
        except TransportError:
            breaker.record_failure()
            raise
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 2

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _opened_at: Optional[float] = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def allow_request(self) -> bool:
        """
        Check if a request may proceed.

        An OPEN circuit moves to HALF_OPEN once the recovery timeout elapses.
        """
        with self._lock:
            if self._state == CircuitState.OPEN:
                if self._opened_at is not None and time.monotonic() - self._opened_at >= self.recovery_timeout:
                    logger.info(f"Circuit '{self.name}': OPEN -> HALF_OPEN")
                    self._state = CircuitState.HALF_OPEN
                    self._success_count = 0
                    return True
                return False
            return True

    def record_success(self):
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    logger.info(f"Circuit '{self.name}': HALF_OPEN -> CLOSED")
                    self._state = CircuitState.CLOSED
                    self._failure_count = 0
            else:
                self._failure_count = 0

    def record_failure(self):
        with self._lock:
            self._failure_count += 1

            if self._state == CircuitState.HALF_OPEN:
                logger.warning(f"Circuit '{self.name}': HALF_OPEN -> OPEN (failure during recovery)")
                self._open()
            elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                logger.warning(f"Circuit '{self.name}': CLOSED -> OPEN ({self._failure_count} consecutive failures)")
                self._open()

    def _open(self):
        self._state = CircuitState.OPEN
        self._opened_at = time.monotonic()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    def reset(self):
        """Force the circuit back to CLOSED."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._opened_at = None

    def get_status(self) -> Dict:
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failures": self._failure_count,
            }
