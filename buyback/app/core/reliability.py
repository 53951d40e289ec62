"""
Reliability utilities.

Includes the Circuit Breaker pattern used to stop calling a mapping provider
that is known to reject our requests.
"""

import logging
import threading
import time
from typing import Optional

from buyback.app.core.config import settings

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.

    trip() opens the circuit and callers skip the guarded provider while
    is_open is true. After 'reset_timeout' seconds one trial request is let
    through (HALF_OPEN): record_success() closes the circuit again, another
    trip() re-opens it. With reset_timeout=None an open circuit stays open for
    the lifetime of the process unless reset_state() is called explicitly.

    State changes are guarded by a lock because concurrent requests may race
    to trip the breaker.
    """
    def __init__(self, reset_timeout: Optional[int] = 60, name: str = "default"):
        self.name = name
        self.reset_timeout = reset_timeout
        self.trips = 0
        self.last_failure_time = 0.0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        """True while calls must be skipped."""
        with self._lock:
            if self.state != "OPEN":
                return False
            if self.reset_timeout is not None and time.time() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
                logger.info("Circuit breaker %s half-open, allowing a trial request", self.name)
                return False
            return True

    def trip(self, reason: str = ""):
        """Open the circuit immediately."""
        with self._lock:
            self.trips += 1
            self.last_failure_time = time.time()
            if self.state != "OPEN":
                self.state = "OPEN"
                logger.warning("Circuit breaker %s tripped: %s", self.name, reason or "no reason given")

    def record_success(self):
        """A guarded request succeeded; closes a half-open circuit."""
        with self._lock:
            if self.state == "HALF_OPEN":
                self.state = "CLOSED"
                logger.info("Circuit breaker %s closed after a successful trial", self.name)

    def reset_state(self):
        with self._lock:
            self.trips = 0
            self.state = "CLOSED"


def build_mapping_breaker() -> CircuitBreaker:
    """Breaker for the mapping provider's referrer restriction."""
    return CircuitBreaker(
        reset_timeout=settings.mapping_breaker_reset_seconds,
        name="mapping-referrer",
    )


# Process-wide instance shared by the distance calculator and route optimizer
mapping_circuit_breaker = build_mapping_breaker()
