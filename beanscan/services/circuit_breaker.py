"""
BeanScan Backend - Circuit Breaker
====================================

What:  Stops calling the recognition engine after repeated consecutive failures.
How:   Three-state machine. The OcrService owns one instance for the process.

State Machine:
    CLOSED     normal operation; failures are counted
               → failure_count >= threshold: OPEN
    OPEN       every call raises CircuitBreakerOpenError at once
               → recovery_timeout elapsed: HALF_OPEN
    HALF_OPEN  one probe call is let through
               → success: CLOSED
               → failure: OPEN (timer restarts)

Not thread-safe. Uvicorn async workers run all requests on a single event
loop, and every transition here is synchronous.
"""

import logging
import time
from typing import Callable, Optional

from beanscan.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)


class CircuitBreaker:
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            failure_threshold: Consecutive failures before the circuit opens
            recovery_timeout:  Seconds the circuit stays open before a probe
            clock:             Monotonic time source, replaceable in tests
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None
        self._clock = clock

    def can_execute(self) -> bool:
        """
        Gate a call through the breaker.

        Returns:
            True when the call may proceed.

        Raises:
            CircuitBreakerOpenError: the circuit is OPEN and still cooling down.
        """
        if self.state != self.OPEN:
            return True

        elapsed = self._clock() - (self.last_failure_time or 0.0)
        if elapsed >= self.recovery_timeout:
            logger.info("Circuit breaker HALF_OPEN after %.1fs, allowing a probe", elapsed)
            self.state = self.HALF_OPEN
            return True

        remaining = max(1, int(self.recovery_timeout - elapsed))
        raise CircuitBreakerOpenError(recovery_time=remaining)

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker CLOSED, recognition engine recovered")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker back to OPEN, probe call failed")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPEN after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN

    def reset(self) -> None:
        """Force the breaker back to CLOSED (used by tests and admin tooling)."""
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None
