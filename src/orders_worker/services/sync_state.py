"""
Shared sync state in Redis.

Serializes sync runs across processes with a lock and keeps a short run
history for the status endpoint.
"""

import json
import time
from typing import Any, Dict, List, Optional

import redis.asyncio as aioredis

from orders_api.config.constants import SYNC_LOCK_TIMEOUT_SECONDS
from orders_api.core.logger import setup_logger

logger = setup_logger(__name__)

# Redis keys for sync state
REDIS_LAST_SYNC = "orders:sync:last_sync_at"
REDIS_LAST_FULL_SYNC = "orders:sync:last_full_sync_at"
REDIS_SYNC_HISTORY = "orders:sync:history"
REDIS_SYNC_LOCK = "orders:sync:in_progress"
REDIS_VALIDATION_HISTORY = "orders:validation:history"

HISTORY_LIMIT = 10
VALIDATION_HISTORY_LIMIT = 30


class SyncStateStore:
    """Redis-backed lock and run history."""

    def __init__(
        self,
        redis: Optional[aioredis.Redis] = None,
        redis_host: str = "redis",
        redis_port: int = 6379,
        redis_db: int = 0,
    ):
        self.redis_host = redis_host
        self.redis_port = redis_port
        self.redis_db = redis_db
        self._redis: Optional[aioredis.Redis] = redis

    async def _get_redis(self) -> aioredis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = aioredis.Redis(
                host=self.redis_host,
                port=self.redis_port,
                db=self.redis_db,
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def acquire_lock(self, timeout: int = SYNC_LOCK_TIMEOUT_SECONDS) -> bool:
        """Acquire the sync lock. Expires on its own after ``timeout`` seconds."""
        redis = await self._get_redis()
        acquired = await redis.set(
            REDIS_SYNC_LOCK,
            value=str(time.time()),
            nx=True,
            ex=timeout,
        )
        return bool(acquired)

    async def release_lock(self):
        """Release sync lock."""
        redis = await self._get_redis()
        await redis.delete(REDIS_SYNC_LOCK)

    async def is_sync_in_progress(self) -> bool:
        """Check if a sync is currently in progress."""
        redis = await self._get_redis()
        return await redis.exists(REDIS_SYNC_LOCK) > 0

    async def record_run(self, report: Dict[str, Any]):
        """Push a run report to history (max 10 entries) and update last-sync markers."""
        redis = await self._get_redis()

        entry = dict(report)
        # Limit errors stored
        entry["errors"] = list(entry.get("errors") or [])[:5]

        await redis.lpush(REDIS_SYNC_HISTORY, json.dumps(entry, default=str))
        await redis.ltrim(REDIS_SYNC_HISTORY, 0, HISTORY_LIMIT - 1)

        if entry.get("status") in ("success", "partial") and entry.get("completed_at"):
            await redis.set(REDIS_LAST_SYNC, entry["completed_at"])
            if entry.get("source") == "full":
                await redis.set(REDIS_LAST_FULL_SYNC, entry["completed_at"])

    async def record_validation(self, entry: Dict[str, Any]):
        """Push a validation summary (max 30 entries) so drift can be trended."""
        redis = await self._get_redis()
        await redis.lpush(REDIS_VALIDATION_HISTORY, json.dumps(entry, default=str))
        await redis.ltrim(REDIS_VALIDATION_HISTORY, 0, VALIDATION_HISTORY_LIMIT - 1)

    async def _read_list(self, key: str, limit: int) -> List[Dict[str, Any]]:
        redis = await self._get_redis()
        raw = await redis.lrange(key, 0, limit - 1)

        entries = []
        for entry in raw:
            try:
                entries.append(json.loads(entry))
            except json.JSONDecodeError:
                logger.warning(f"Skipping unreadable entry in {key}")
        return entries

    async def get_history(self, limit: int = HISTORY_LIMIT) -> List[Dict[str, Any]]:
        """Most recent run reports, newest first."""
        return await self._read_list(REDIS_SYNC_HISTORY, limit)

    async def get_validation_history(self, limit: int = VALIDATION_HISTORY_LIMIT) -> List[Dict[str, Any]]:
        """Most recent validation summaries, newest first."""
        return await self._read_list(REDIS_VALIDATION_HISTORY, limit)

    async def get_status(self) -> Dict[str, Any]:
        """Last sync markers, lock state and history."""
        redis = await self._get_redis()
        return {
            "last_sync_at": await redis.get(REDIS_LAST_SYNC),
            "last_full_sync_at": await redis.get(REDIS_LAST_FULL_SYNC),
            "sync_in_progress": await self.is_sync_in_progress(),
            "history": await self.get_history(),
            "validation_history": await self.get_validation_history(),
        }
