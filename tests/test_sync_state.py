"""Redis sync lock and run history."""

import fakeredis
import pytest
import pytest_asyncio

from orders_worker.services.sync_state import (
    REDIS_SYNC_HISTORY,
    REDIS_VALIDATION_HISTORY,
    VALIDATION_HISTORY_LIMIT,
    SyncStateStore,
)


@pytest_asyncio.fixture
async def store():
    state = SyncStateStore(redis=fakeredis.FakeAsyncRedis(decode_responses=True))
    yield state
    await state.close()


def run(status="success", source="incremental", completed_at="2024-03-01T10:00:00+00:00", errors=None):
    return {"source": source, "status": status, "completed_at": completed_at, "errors": errors or []}


@pytest.mark.asyncio
async def test_lock_is_exclusive(store):
    assert await store.acquire_lock() is True
    assert await store.acquire_lock() is False
    assert await store.is_sync_in_progress() is True

    await store.release_lock()
    assert await store.is_sync_in_progress() is False
    assert await store.acquire_lock() is True


@pytest.mark.asyncio
async def test_lock_has_expiry(store):
    await store.acquire_lock(timeout=120)
    ttl = await store._redis.ttl("orders:sync:in_progress")
    assert 0 < ttl <= 120


@pytest.mark.asyncio
async def test_history_is_newest_first_and_bounded(store):
    for i in range(12):
        await store.record_run(run(completed_at=f"2024-03-01T{i:02d}:00:00+00:00"))

    history = await store.get_history()
    assert len(history) == 10
    assert history[0]["completed_at"] == "2024-03-01T11:00:00+00:00"
    assert await store._redis.llen(REDIS_SYNC_HISTORY) == 10


@pytest.mark.asyncio
async def test_errors_are_capped(store):
    await store.record_run(run(errors=[f"Batch {i}" for i in range(9)]))
    assert len((await store.get_history())[0]["errors"]) == 5


@pytest.mark.asyncio
async def test_last_sync_markers(store):
    await store.record_run(run(source="incremental", completed_at="2024-03-01T01:00:00+00:00"))
    await store.record_run(run(source="full", completed_at="2024-03-01T02:00:00+00:00"))
    await store.record_run(run(status="failed", source="full", completed_at="2024-03-01T03:00:00+00:00"))

    status = await store.get_status()
    assert status["last_sync_at"] == "2024-03-01T02:00:00+00:00"
    assert status["last_full_sync_at"] == "2024-03-01T02:00:00+00:00"
    assert status["sync_in_progress"] is False
    assert len(status["history"]) == 3
    assert status["validation_history"] == []


@pytest.mark.asyncio
async def test_validation_history_is_kept_separately(store):
    for i in range(VALIDATION_HISTORY_LIMIT + 2):
        await store.record_validation({"timestamp": f"run-{i}", "status": "OK", "accuracy": 100.0})
    await store.record_run(run())

    history = await store.get_validation_history()
    assert len(history) == VALIDATION_HISTORY_LIMIT
    assert history[0]["timestamp"] == f"run-{VALIDATION_HISTORY_LIMIT + 1}"
    assert await store._redis.llen(REDIS_VALIDATION_HISTORY) == VALIDATION_HISTORY_LIMIT
    assert len(await store.get_history()) == 1
