"""In-memory TTL cache.

Short-lived key/value store used to avoid redundant upstream calls and
recomputation. Entries expire purely by age (no size or LRU eviction):
lazily on access, and proactively by a periodic sweep task.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from orders_api.core.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_TTL_SECONDS = 300.0
SWEEP_INTERVAL_SECONDS = 60.0


@dataclass
class CacheEntry:
    """Single cached value."""
    value: Any
    stored_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) > self.ttl


@dataclass
class CacheMetadata:
    """Cached value plus freshness information for display."""
    value: Any = None
    stored_at: Optional[float] = None
    expires_at: Optional[float] = None
    age: Optional[float] = None
    ttl: Optional[float] = None

    @property
    def hit(self) -> bool:
        return self.stored_at is not None


class TTLCache:
    """Key/value cache with per-entry time-to-live.

    A miss occurs once ``now - stored_at > ttl``. Reads, writes and the
    sweep are serialized by a lock so the cache can be shared by request
    handlers and the background sweeper.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on miss/expiry."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                logger.debug(f"Cache expired: {key} (age: {entry.age(now):.0f}s)")
                return None

        logger.debug(f"Cache hit: {key} (age: {entry.age(now):.0f}s)")
        return entry.value

    def get_with_metadata(self, key: str) -> CacheMetadata:
        """Return the value with stored-at/expires-at/age, empty metadata on miss."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return CacheMetadata()
            if entry.is_expired(now):
                del self._entries[key]
                return CacheMetadata()

        return CacheMetadata(
            value=entry.value,
            stored_at=entry.stored_at,
            expires_at=entry.stored_at + entry.ttl,
            age=entry.age(now),
            ttl=entry.ttl,
        )

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value for ``ttl`` seconds (default_ttl when omitted)."""
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock(), ttl=ttl)
        logger.debug(f"Cache set: {key} (TTL: {ttl:.0f}s)")

    def has(self, key: str) -> bool:
        """Check if key exists and is not expired."""
        return self.get_with_metadata(key).hit

    def delete(self, key: str) -> bool:
        with self._lock:
            deleted = self._entries.pop(key, None) is not None
        if deleted:
            logger.debug(f"Cache deleted: {key}")
        return deleted

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("Cache cleared completely")

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug(f"Cache cleanup: removed {len(expired)} expired entries")
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            entries = [
                {"key": key, "age": entry.age(now), "ttl": entry.ttl}
                for key, entry in self._entries.items()
            ]
        return {"size": len(entries), "keys": [e["key"] for e in entries], "entries": entries}

    # ------------------------------------------------------------------
    # Periodic sweep
    # ------------------------------------------------------------------

    def start_sweeper(self) -> None:
        """Start the background sweep task on the running event loop."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Cache sweeper started (every {self.sweep_interval:.0f}s)")

    async def stop_sweeper(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None
        logger.info("Cache sweeper stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Cache sweep failed: {e}", exc_info=True)


def generate_cache_key(prefix: str, params: Dict[str, Any]) -> str:
    """Build a cache key that does not depend on parameter order."""
    parts = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return f"{prefix}:{parts}"
