"""
Circuit breaker for upstream services.

Failed calls are never retried in a tight loop here: the next poll or
monitor tick is the retry. The breaker only stops a service that keeps
failing from being hammered on every tick.
"""

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """
    Circuit breaker to prevent cascading failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Failures exceeded threshold, requests blocked
    - HALF_OPEN: Testing if service recovered

    Usage:
        cb = CircuitBreaker(name="Ethos", failure_threshold=5)

        if cb.can_execute():
            try:
                result = await fetch_score()
                cb.record_success()
            except NetworkException:
                cb.record_failure()
                raise
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        name: str = "default",
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Number of consecutive failures before opening
            recovery_timeout: Seconds before attempting recovery
            name: Circuit breaker name (for logging)
            clock: Time source, overridable in tests
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self._clock = clock

        self.failures = 0
        self.last_failure_time = 0.0
        self.state = "CLOSED"

    def record_success(self):
        """Record successful request"""
        if self.state != "CLOSED":
            logger.info(f"Circuit breaker '{self.name}' CLOSED, service recovered")
        self.failures = 0
        self.state = "CLOSED"

    def record_failure(self):
        """Record failed request"""
        self.failures += 1
        self.last_failure_time = self._clock()

        if self.state == "HALF_OPEN" or self.failures >= self.failure_threshold:
            if self.state != "OPEN":
                logger.warning(f"Circuit breaker '{self.name}' OPENED after {self.failures} failures")
            self.state = "OPEN"

    def can_execute(self) -> bool:
        """Check if request can be executed"""
        if self.state == "CLOSED":
            return True

        if self.state == "OPEN":
            elapsed = self._clock() - self.last_failure_time
            if elapsed >= self.recovery_timeout:
                self.state = "HALF_OPEN"
                logger.info(f"Circuit breaker '{self.name}' entering HALF_OPEN state")
                return True
            return False

        # HALF_OPEN - allow one request to test
        return True
