"""Circuit breaker for remote dependencies.

Fails fast when a dependency (upstream order API, database) fails repeatedly.
States: closed (normal), open (failing fast), half_open (trial recovery).
"""

import threading
import time
from typing import Callable, Optional

from orders_api.core.logger import setup_logger

logger = setup_logger(__name__)

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised instead of calling a dependency whose circuit is open.

    Synthetic: no remote call was issued, so it must never be retried or
    mistaken for an upstream failure.
    """

    def __init__(self, name: str, failure_count: int):
        self.name = name
        self.failure_count = failure_count
        super().__init__(
            f"Circuit breaker '{name}' OPEN - too many failures "
            f"({failure_count} consecutive failures)"
        )


class CircuitBreaker:
    """Per-dependency failure tracker.

    Opens after ``threshold`` consecutive failures. Once ``reset_timeout``
    seconds have passed since the last failure, a single trial call is let
    through in half-open state: success closes the circuit, failure re-opens
    it. Other callers fail fast while the trial is in flight; a trial that
    never reports back is replaced after another ``reset_timeout``.
    """

    def __init__(
        self,
        name: str,
        threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            name: Dependency name used in logs and health output
            threshold: Number of consecutive failures before opening circuit
            reset_timeout: Seconds to wait before a half-open trial call
            clock: Time source (seconds), injectable for tests
        """
        self.name = name
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.Lock()

        self.failure_count = 0
        self.state = CLOSED
        self.last_failure_at: Optional[float] = None
        self._trial_started_at: Optional[float] = None

        logger.info(
            f"Circuit breaker '{name}' initialized: threshold={threshold}, "
            f"reset_timeout={reset_timeout}s"
        )

    def allow_request(self) -> bool:
        """Check if a call may be attempted.

        Moves an open circuit to half_open once the reset timeout elapsed
        and admits one trial call at a time while half_open.

        Returns:
            True if the call should proceed, False to fail fast
        """
        with self._lock:
            if self.state == CLOSED:
                return True

            now = self._clock()
            if self.state == HALF_OPEN:
                if self._trial_started_at is not None and now - self._trial_started_at < self.reset_timeout:
                    return False
                logger.warning(f"Circuit breaker '{self.name}': previous trial call never reported, retrying")
                self._trial_started_at = now
                return True

            elapsed = now - (self.last_failure_at or 0.0)
            if elapsed >= self.reset_timeout:
                self.state = HALF_OPEN
                self._trial_started_at = now
                logger.info(
                    f"Circuit breaker '{self.name}': entering HALF_OPEN state "
                    f"({elapsed:.1f}s since last failure)"
                )
                return True

            return False

    def record_success(self) -> None:
        """Record a successful call: reset failures and close the circuit."""
        with self._lock:
            if self.state != CLOSED:
                logger.info(
                    f"Circuit breaker '{self.name}': dependency recovered, closing circuit "
                    f"(was {self.state}, failures={self.failure_count})"
                )
            self.failure_count = 0
            self.state = CLOSED
            self._trial_started_at = None

    def record_failure(self) -> None:
        """Record a failed call, opening the circuit when warranted."""
        with self._lock:
            self.failure_count += 1
            self.last_failure_at = self._clock()
            self._trial_started_at = None

            if self.state == HALF_OPEN:
                self.state = OPEN
                logger.error(
                    f"Circuit breaker '{self.name}': trial call failed, re-opening circuit"
                )
            elif self.state == CLOSED and self.failure_count >= self.threshold:
                self.state = OPEN
                logger.error(
                    f"Circuit breaker '{self.name}': OPEN after "
                    f"{self.failure_count} consecutive failures"
                )
            else:
                logger.warning(
                    f"Circuit breaker '{self.name}': failure recorded "
                    f"({self.failure_count}/{self.threshold})"
                )

    def get_state(self) -> dict:
        """Get current circuit breaker state.

        Returns:
            Dict with name, state, failure_count, threshold and reset_timeout
        """
        with self._lock:
            return {
                "name": self.name,
                "state": self.state,
                "failure_count": self.failure_count,
                "threshold": self.threshold,
                "reset_timeout": self.reset_timeout,
                "last_failure_at": self.last_failure_at,
            }
