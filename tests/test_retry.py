"""Retry executor: backoff, retry predicate and breaker integration."""

import httpx
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from orders_api.api.errors import UpstreamAPIError, UpstreamTimeoutError
from orders_api.integrations.circuit_breaker import CLOSED, OPEN, CircuitBreaker, CircuitOpenError
from orders_api.integrations.retry import (
    RetryExecutor,
    RetryOptions,
    compute_backoff_delay,
    is_transient_error,
    is_transient_store_error,
)


class FlakyOperation:
    """Fails with the queued errors, then returns ``result``."""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def test_backoff_delay_bounds():
    for attempt in range(6):
        base = min(1.0 * 2 ** attempt, 10.0)
        low = compute_backoff_delay(attempt, 1.0, 10.0, rand=lambda: 0.0)
        high = compute_backoff_delay(attempt, 1.0, 10.0, rand=lambda: 0.999999)
        assert low == base
        assert base <= high < base * 1.3


def test_backoff_delay_is_capped():
    assert compute_backoff_delay(10, 1.0, 10.0, rand=lambda: 0.0) == 10.0


@pytest.mark.parametrize(
    "error, expected",
    [
        (UpstreamAPIError(503, "Service Unavailable"), True),
        (UpstreamAPIError(500, "Internal Server Error"), True),
        (UpstreamAPIError(404, "Not Found"), False),
        (UpstreamAPIError(429, "Too Many Requests"), False),
        (UpstreamTimeoutError("/orders", 300), True),
        (httpx.ConnectError("connection reset"), True),
        (Exception("Cloudflare 524: a timeout occurred"), True),
        (Exception("Gateway Timeout"), True),
        (ValueError("bad payload"), False),
        (CircuitOpenError("order_api", 5), False),
    ],
)
def test_is_transient_error(error, expected):
    assert is_transient_error(error) is expected


def test_store_error_predicate():
    operational = OperationalError("INSERT", {}, Exception("database is locked"))
    integrity = IntegrityError("INSERT", {}, Exception("constraint failed"))

    assert is_transient_store_error(operational) is True
    assert is_transient_store_error(integrity) is False
    assert is_transient_store_error(ConnectionError("reset")) is True
    assert is_transient_store_error(ValueError("bad row")) is False


@pytest.mark.asyncio
async def test_retries_transient_errors_then_succeeds(sleeper):
    breaker = CircuitBreaker("order_api", threshold=5)
    executor = RetryExecutor(breaker, RetryOptions(max_retries=3), sleep=sleeper)
    operation = FlakyOperation([UpstreamAPIError(503, "unavailable"), UpstreamAPIError(502, "bad gateway")])

    result = await executor.call(operation)

    assert result == "ok"
    assert operation.calls == 3
    assert len(sleeper.delays) == 2
    assert 1.0 <= sleeper.delays[0] < 1.3
    assert 2.0 <= sleeper.delays[1] < 2.6
    assert breaker.failure_count == 0


@pytest.mark.asyncio
async def test_non_retryable_error_raises_immediately(sleeper):
    breaker = CircuitBreaker("order_api", threshold=5)
    executor = RetryExecutor(breaker, RetryOptions(max_retries=3), sleep=sleeper)
    operation = FlakyOperation([UpstreamAPIError(404, "Not Found")])

    with pytest.raises(UpstreamAPIError):
        await executor.call(operation)

    assert operation.calls == 1
    assert sleeper.delays == []
    assert breaker.failure_count == 1


@pytest.mark.asyncio
async def test_exhausted_retries_raise_last_error(sleeper):
    breaker = CircuitBreaker("order_api", threshold=5)
    executor = RetryExecutor(breaker, RetryOptions(max_retries=2), sleep=sleeper)
    errors = [UpstreamAPIError(500, f"boom {i}") for i in range(3)]
    operation = FlakyOperation(errors)

    with pytest.raises(UpstreamAPIError, match="boom 2"):
        await executor.call(operation)

    assert operation.calls == 3
    assert len(sleeper.delays) == 2
    assert breaker.failure_count == 1


@pytest.mark.asyncio
async def test_on_retry_hook_receives_attempt_and_delay(sleeper):
    executor = RetryExecutor(CircuitBreaker("order_api"), RetryOptions(max_retries=3), sleep=sleeper)
    seen = []

    await executor.call(
        FlakyOperation([UpstreamTimeoutError("/orders", 300)]),
        on_retry=lambda attempt, error, delay: seen.append((attempt, type(error), delay)),
    )

    assert len(seen) == 1
    assert seen[0][0] == 1
    assert seen[0][1] is UpstreamTimeoutError
    assert seen[0][2] == sleeper.delays[0]


@pytest.mark.asyncio
async def test_open_breaker_fails_fast_without_calling(sleeper):
    breaker = CircuitBreaker("order_api", threshold=1, reset_timeout=60)
    breaker.record_failure()
    assert breaker.state == OPEN

    executor = RetryExecutor(breaker, RetryOptions(max_retries=3), sleep=sleeper)
    operation = FlakyOperation([])

    with pytest.raises(CircuitOpenError):
        await executor.call(operation)

    assert operation.calls == 0
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_repeated_failures_open_the_breaker(sleeper):
    breaker = CircuitBreaker("order_api", threshold=2, reset_timeout=60)
    executor = RetryExecutor(breaker, RetryOptions(max_retries=0), sleep=sleeper)

    for _ in range(2):
        with pytest.raises(UpstreamAPIError):
            await executor.call(FlakyOperation([UpstreamAPIError(503, "down")]))

    assert breaker.state == OPEN
    with pytest.raises(CircuitOpenError):
        await executor.call(FlakyOperation([]))


@pytest.mark.asyncio
async def test_failed_trial_call_is_not_retried(sleeper):
    clock = [0.0]
    breaker = CircuitBreaker("order_api", threshold=1, reset_timeout=30, clock=lambda: clock[0])
    breaker.record_failure()
    clock[0] += 30

    executor = RetryExecutor(breaker, RetryOptions(max_retries=3), sleep=sleeper)
    operation = FlakyOperation([UpstreamAPIError(503, "still down")])

    with pytest.raises(UpstreamAPIError):
        await executor.call(operation)

    assert operation.calls == 1
    assert sleeper.delays == []
    assert breaker.state == OPEN


@pytest.mark.asyncio
async def test_successful_trial_closes_breaker(sleeper):
    clock = [0.0]
    breaker = CircuitBreaker("order_api", threshold=1, reset_timeout=30, clock=lambda: clock[0])
    breaker.record_failure()
    clock[0] += 30

    executor = RetryExecutor(breaker, RetryOptions(max_retries=3), sleep=sleeper)

    assert await executor.call(FlakyOperation([])) == "ok"
    assert breaker.state == CLOSED
