"""Health checks: store, upstream, last sync age and circuit breakers."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from orders_api.config.constants import HEALTH_PROBE_CACHE_TTL_SECONDS, LAST_SYNC_MAX_AGE_HOURS
from orders_api.core.cache import TTLCache
from orders_api.core.logger import setup_logger
from orders_api.integrations.circuit_breaker import CLOSED, CircuitBreaker
from orders_worker.repositories.base import OrderRepository

logger = setup_logger(__name__)

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"

UPSTREAM_PROBE_KEY = "health:upstream"


async def check_database(repository: OrderRepository) -> Dict[str, Any]:
    started = time.monotonic()
    if not await repository.health_check():
        return {"status": UNHEALTHY, "message": "Database unreachable"}
    try:
        count = await repository.count_orders()
    except Exception as e:
        return {"status": UNHEALTHY, "message": f"Database error: {e}"}
    return {
        "status": HEALTHY,
        "message": f"{count} orders in database",
        "response_time_ms": round((time.monotonic() - started) * 1000, 1),
    }


async def _probe_upstream(api_client) -> Dict[str, Any]:
    started = time.monotonic()
    try:
        page = await api_client.get_orders(page=1, per_page=1)
    except Exception as e:
        return {"status": UNHEALTHY, "message": str(e) or "API unreachable"}
    return {
        "status": HEALTHY,
        "message": f"API responding ({len(page.orders)} orders in sample)",
        "response_time_ms": round((time.monotonic() - started) * 1000, 1),
    }


async def check_upstream(
    api_client,
    cache: TTLCache,
    ttl: float = HEALTH_PROBE_CACHE_TTL_SECONDS,
) -> Dict[str, Any]:
    """Probe the upstream API, reusing a recent probe result.

    The returned dict carries ``cached`` and ``age_seconds`` so callers
    know how fresh the probe is.
    """
    meta = cache.get_with_metadata(UPSTREAM_PROBE_KEY)
    if meta.hit:
        return {**meta.value, "cached": True, "age_seconds": round(meta.age, 1)}

    result = await _probe_upstream(api_client)
    cache.set(UPSTREAM_PROBE_KEY, result, ttl)
    return {**result, "cached": False, "age_seconds": 0.0}


async def check_last_sync_age(
    repository: OrderRepository,
    max_age_hours: float = LAST_SYNC_MAX_AGE_HOURS,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    try:
        last_synced = await repository.latest_synced_at()
    except Exception as e:
        return {"status": UNHEALTHY, "message": str(e) or "Check failed"}

    if last_synced is None:
        return {"status": UNHEALTHY, "message": "No synced orders found"}

    now = now or datetime.now(timezone.utc)
    hours_ago = (now - last_synced).total_seconds() / 3600
    status = UNHEALTHY if hours_ago > max_age_hours else HEALTHY
    return {
        "status": status,
        "message": f"Last sync {hours_ago:.1f} hours ago",
        "last_sync_hours_ago": round(hours_ago, 2),
    }


def breaker_states(breakers: Iterable[CircuitBreaker]) -> Dict[str, Dict[str, Any]]:
    return {breaker.name: breaker.get_state() for breaker in breakers}


async def run_health_checks(
    repository: OrderRepository,
    api_client,
    probe_cache: TTLCache,
    breakers: Iterable[CircuitBreaker],
) -> Dict[str, Any]:
    """Run all checks; healthy only if every check passes and every breaker is closed."""
    database, upstream, last_sync = await asyncio.gather(
        check_database(repository),
        check_upstream(api_client, probe_cache),
        check_last_sync_age(repository),
    )
    circuit_breakers = breaker_states(breakers)

    is_healthy = (
        all(check["status"] == HEALTHY for check in (database, upstream, last_sync))
        and all(state["state"] == CLOSED for state in circuit_breakers.values())
    )

    if not is_healthy:
        logger.warning("Health check degraded")

    return {
        "status": HEALTHY if is_healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": database,
            "upstream": upstream,
            "last_sync": last_sync,
        },
        "circuit_breakers": circuit_breakers,
    }
