"""Fault-tolerant call executor.

Bounded retries with exponential backoff and jitter, consulting a
per-dependency circuit breaker before every attempt.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from orders_api.api.errors import UpstreamAPIError, UpstreamTimeoutError
from orders_api.core.logger import setup_logger
from orders_api.integrations.circuit_breaker import HALF_OPEN, CircuitBreaker, CircuitOpenError

logger = setup_logger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.3
GATEWAY_TIMEOUT_MARKERS = ("524", "gateway timeout")


@dataclass
class RetryOptions:
    """Retry budget for one logical call."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 10.0  # seconds
    should_retry: Optional[Callable[[BaseException], bool]] = None
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None


def compute_backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay before retrying after a failed attempt (0-indexed).

    ``min(base * 2**attempt, max_delay)`` plus up to 30% of that as jitter.
    """
    delay = min(base_delay * (2 ** attempt), max_delay)
    return delay + rand() * JITTER_RATIO * delay


def is_transient_error(error: BaseException) -> bool:
    """Default retry predicate for upstream calls.

    Retries connection resets/timeouts, 5xx responses and gateway-timeout
    markers. Never retries 4xx responses or an open circuit.
    """
    if isinstance(error, CircuitOpenError):
        return False

    if isinstance(error, (UpstreamTimeoutError, httpx.TimeoutException, TimeoutError)):
        return True

    if isinstance(error, (httpx.NetworkError, httpx.RemoteProtocolError, ConnectionError)):
        return True

    status_code = None
    if isinstance(error, UpstreamAPIError):
        status_code = error.status_code
    elif isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code

    if status_code is not None:
        return 500 <= status_code < 600

    message = str(error).lower()
    return any(marker in message for marker in GATEWAY_TIMEOUT_MARKERS)


def is_transient_store_error(error: BaseException) -> bool:
    """Retry predicate for database batches.

    Connection-level and operational failures are retried; constraint and
    data errors are not, since the same batch would fail again.
    """
    if isinstance(error, CircuitOpenError):
        return False
    if isinstance(error, IntegrityError):
        return False
    if isinstance(error, OperationalError):
        return True
    if isinstance(error, DBAPIError):
        return bool(error.connection_invalidated)
    return isinstance(error, (ConnectionError, TimeoutError))


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions,
    circuit_breaker: Optional[CircuitBreaker] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with retries, backoff and circuit breaking.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        options: Retry budget and hooks
        circuit_breaker: Breaker for the dependency being called
        sleep: Awaitable delay primitive (injectable for tests)

    Returns:
        The operation's result

    Raises:
        CircuitOpenError: breaker is open, no call issued
        Exception: the last error once retries are exhausted or the error
            is not retryable
    """
    should_retry = options.should_retry or is_transient_error
    attempt = 0

    while True:
        if circuit_breaker is not None and not circuit_breaker.allow_request():
            raise CircuitOpenError(circuit_breaker.name, circuit_breaker.failure_count)

        try:
            result = await operation()
        except Exception as e:
            if circuit_breaker is not None and circuit_breaker.state == HALF_OPEN:
                # Only one trial call per half-open window
                logger.warning(f"Trial call through '{circuit_breaker.name}' failed: {e}")
                circuit_breaker.record_failure()
                raise

            if not should_retry(e):
                logger.warning(f"Error not retryable: {e}")
                if circuit_breaker is not None:
                    circuit_breaker.record_failure()
                raise

            if attempt >= options.max_retries:
                logger.error(f"Max retries ({options.max_retries}) exceeded: {e}")
                if circuit_breaker is not None:
                    circuit_breaker.record_failure()
                raise

            delay = compute_backoff_delay(attempt, options.base_delay, options.max_delay)
            logger.warning(
                f"Retry attempt {attempt + 1}/{options.max_retries} after {delay:.2f}s",
                extra={"context": {"error": str(e), "attempt": attempt + 1, "delay": delay}},
            )
            if options.on_retry is not None:
                options.on_retry(attempt + 1, e, delay)

            await sleep(delay)
            attempt += 1
            continue

        if circuit_breaker is not None:
            circuit_breaker.record_success()
        if attempt > 0:
            logger.info(f"Operation succeeded after {attempt} retries")
        return result


class RetryExecutor:
    """Executor bound to one dependency's breaker and retry budget."""

    def __init__(
        self,
        circuit_breaker: Optional[CircuitBreaker],
        options: Optional[RetryOptions] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.circuit_breaker = circuit_breaker
        self.options = options or RetryOptions()
        self.sleep = sleep

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    ) -> T:
        options = self.options
        if on_retry is not None:
            options = RetryOptions(
                max_retries=options.max_retries,
                base_delay=options.base_delay,
                max_delay=options.max_delay,
                should_retry=options.should_retry,
                on_retry=on_retry,
            )
        return await execute_with_retry(operation, options, self.circuit_breaker, self.sleep)
