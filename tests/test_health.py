"""Health checks."""

from datetime import datetime, timedelta, timezone

import pytest

from orders_api.api.errors import UpstreamAPIError
from orders_api.core.cache import TTLCache
from orders_api.integrations.circuit_breaker import CircuitBreaker
from orders_worker.services.health import (
    HEALTHY,
    UNHEALTHY,
    check_last_sync_age,
    check_upstream,
    run_health_checks,
)
from orders_worker.services.transform import transform_orders
from tests.fakes import FakeOrderAPI, make_order


@pytest.mark.asyncio
async def test_upstream_probe_is_cached():
    api = FakeOrderAPI({1: [make_order(1)]})
    cache = TTLCache()

    first = await check_upstream(api, cache)
    second = await check_upstream(api, cache)

    assert first["status"] == HEALTHY
    assert first["cached"] is False
    assert second["cached"] is True
    assert len(api.calls) == 1
    assert api.calls[0]["per_page"] == 1


@pytest.mark.asyncio
async def test_upstream_failure_is_unhealthy():
    api = FakeOrderAPI({}, failures={1: [UpstreamAPIError(401, "Unauthorized")]})
    result = await check_upstream(api, TTLCache())

    assert result["status"] == UNHEALTHY
    assert "401" in result["message"]


@pytest.mark.asyncio
async def test_last_sync_age(repository):
    assert (await check_last_sync_age(repository))["status"] == UNHEALTHY

    await repository.upsert_orders(transform_orders([make_order(1)]))
    assert (await check_last_sync_age(repository))["status"] == HEALTHY

    later = datetime.now(timezone.utc) + timedelta(hours=26)
    stale = await check_last_sync_age(repository, now=later)
    assert stale["status"] == UNHEALTHY
    assert stale["last_sync_hours_ago"] > 25


@pytest.mark.asyncio
async def test_all_checks_pass(repository):
    await repository.upsert_orders(transform_orders([make_order(1)]))
    breakers = [CircuitBreaker("order_api"), CircuitBreaker("database")]

    result = await run_health_checks(repository, FakeOrderAPI({1: [make_order(1)]}), TTLCache(), breakers)

    assert result["status"] == HEALTHY
    assert result["checks"]["database"]["message"] == "1 orders in database"
    assert set(result["circuit_breakers"]) == {"order_api", "database"}


@pytest.mark.asyncio
async def test_open_breaker_degrades_health(repository):
    await repository.upsert_orders(transform_orders([make_order(1)]))
    api_breaker = CircuitBreaker("order_api", threshold=1)
    api_breaker.record_failure()

    result = await run_health_checks(
        repository, FakeOrderAPI({1: [make_order(1)]}), TTLCache(), [api_breaker, CircuitBreaker("database")]
    )

    assert result["status"] == "degraded"
    assert result["circuit_breakers"]["order_api"]["state"] == "open"
