"""Pytest configuration and fixtures."""

import os

# Keep test runs from writing log files
os.environ.setdefault("LOG_TO_FILE", "false")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from orders_api.api.pagination import PaginatedFetcher  # noqa: E402
from orders_api.integrations.circuit_breaker import CircuitBreaker  # noqa: E402
from orders_api.integrations.retry import (  # noqa: E402
    RetryExecutor,
    RetryOptions,
    is_transient_store_error,
)
from orders_worker.db.base import get_session_factory, init_db  # noqa: E402
from orders_worker.repositories.sql_repository import SQLOrderRepository  # noqa: E402
from orders_worker.services.sync_monitor import SyncMonitor  # noqa: E402
from orders_worker.services.sync_orchestrator import SyncOrchestrator  # noqa: E402
from tests.fakes import FakeOrderAPI, SleepRecorder  # noqa: E402


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory SQLite database per test."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def repository(engine) -> SQLOrderRepository:
    return SQLOrderRepository(get_session_factory(engine))


@pytest.fixture
def api_breaker() -> CircuitBreaker:
    return CircuitBreaker("order_api", threshold=3, reset_timeout=30)


@pytest.fixture
def db_breaker() -> CircuitBreaker:
    return CircuitBreaker("database", threshold=5, reset_timeout=60)


@pytest.fixture
def api_executor(api_breaker, sleeper) -> RetryExecutor:
    return RetryExecutor(api_breaker, RetryOptions(max_retries=3), sleep=sleeper)


@pytest.fixture
def db_executor(db_breaker, sleeper) -> RetryExecutor:
    return RetryExecutor(
        db_breaker,
        RetryOptions(max_retries=2, should_retry=is_transient_store_error),
        sleep=sleeper,
    )


@pytest.fixture
def monitor(tmp_path) -> SyncMonitor:
    return SyncMonitor(notifier=None, metrics_file=str(tmp_path / "sync-metrics.json"))


@pytest.fixture
def build_orchestrator(repository, api_executor, db_executor, monitor, sleeper):
    """Factory: orchestrator over a scripted upstream."""

    def _build(api: FakeOrderAPI, **kwargs) -> SyncOrchestrator:
        fetcher = PaginatedFetcher(api, api_executor)
        options = {
            "fetcher": fetcher,
            "repository": kwargs.pop("repository", repository),
            "db_executor": db_executor,
            "monitor": monitor,
            "sleep": sleeper,
        }
        options.update(kwargs)
        return SyncOrchestrator(**options)

    return _build
