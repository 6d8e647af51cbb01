"""
Sync Orchestrator.

Full and incremental sync runs over the paginated fetcher, plus the shared
batched persistence path used by sync runs, drift repair and webhooks.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from orders_api.api.pagination import PaginatedFetcher
from orders_api.config.constants import (
    DEFAULT_INCREMENTAL_WINDOW_HOURS,
    FULL_SYNC_MAX_PAGES,
    INCREMENTAL_SYNC_MAX_PAGES,
    INTER_BATCH_DELAY_SECONDS,
    UPSERT_BATCH_SIZE,
)
from orders_api.core.logger import setup_logger
from orders_api.core.monitoring import set_sync_context
from orders_api.integrations.retry import RetryExecutor
from orders_worker.repositories.base import OrderRepository
from orders_worker.services.sync_monitor import SyncMonitor, SyncRunReport
from orders_worker.services.sync_state import SyncStateStore
from orders_worker.services.transform import transform_order, transform_orders

logger = setup_logger(__name__)


def incremental_date_range(now: datetime, window_hours: int) -> Dict[str, str]:
    """Upstream date filter (YYYY-MM-DD, UTC) covering the last ``window_hours``."""
    start = now - timedelta(hours=window_hours)
    return {
        "start_date": start.astimezone(timezone.utc).strftime("%Y-%m-%d"),
        "end_date": now.astimezone(timezone.utc).strftime("%Y-%m-%d"),
    }


def is_unchanged(row: Dict[str, Any], local_updated_at: Optional[datetime]) -> bool:
    """True when the stored copy is at least as new as the incoming row."""
    if local_updated_at is None:
        return False
    incoming = row.get("updated_at")
    if incoming is None:
        return True
    return incoming <= local_updated_at


class SyncOrchestrator:
    """Runs sync jobs and owns the batched write path."""

    def __init__(
        self,
        fetcher: PaginatedFetcher,
        repository: OrderRepository,
        db_executor: RetryExecutor,
        monitor: SyncMonitor,
        state_store: Optional[SyncStateStore] = None,
        batch_size: int = UPSERT_BATCH_SIZE,
        inter_batch_delay: float = INTER_BATCH_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Args:
            fetcher: Paginated fetcher (upstream executor + breaker inside)
            repository: Order storage
            db_executor: Executor bound to the database breaker
            monitor: Run report finalizer
            state_store: Optional Redis lock/history; None disables both
            batch_size: Rows per upsert
            inter_batch_delay: Pause between batches (seconds)
            sleep: Awaitable delay primitive
            clock: Current UTC time
        """
        self.fetcher = fetcher
        self.repository = repository
        self.db_executor = db_executor
        self.monitor = monitor
        self.state_store = state_store
        self.batch_size = batch_size
        self.inter_batch_delay = inter_batch_delay
        self.sleep = sleep
        self.clock = clock

    async def persist_orders(self, rows: List[Dict[str, Any]], report: SyncRunReport) -> SyncRunReport:
        """
        Upsert transformed rows in sequential batches.

        A batch that still fails after retries is counted in
        ``report.failed_batches`` and the remaining batches continue.
        """
        batches = [rows[i:i + self.batch_size] for i in range(0, len(rows), self.batch_size)]
        if not batches:
            return report

        logger.info(f"Persisting {len(rows)} orders in {len(batches)} batches of {self.batch_size}")

        for index, batch in enumerate(batches, 1):
            try:
                written = await self.db_executor.call(
                    lambda batch=batch: self.repository.upsert_orders(batch),
                    on_retry=report.record_retry,
                )
                report.record_batch(len(batch), True, written=written)
                logger.debug(f"Batch {index}/{len(batches)} synced ({written}/{len(batch)} orders)")
            except Exception as e:
                report.record_batch(len(batch), False)
                report.errors.append(f"Batch {index}: {e}")
                logger.error(f"Batch {index}/{len(batches)} failed: {e}")

            if index < len(batches) and self.inter_batch_delay > 0:
                await self.sleep(self.inter_batch_delay)

        return report

    async def run_full_sync(self, max_pages: Optional[int] = None, dry_run: bool = False) -> SyncRunReport:
        """
        Fetch every order (up to the page ceiling) and upsert it.

        Args:
            max_pages: Page ceiling (defaults to FULL_SYNC_MAX_PAGES)
            dry_run: Fetch and transform only; nothing is written
        """
        report = self.monitor.start("full", dry_run=dry_run)

        async def body():
            result = await self.fetcher.fetch_all(
                max_pages=max_pages or FULL_SYNC_MAX_PAGES,
                on_retry=report.record_retry,
            )
            report.fetched = len(result.orders)
            report.pages_fetched = result.pages_fetched
            report.stop_reason = result.stop_reason

            rows = transform_orders(result.orders)

            if dry_run:
                logger.info(f"DRY RUN - {len(rows)} orders would be synced")
                report.synced = len(rows)
                report.batches = -(-len(rows) // self.batch_size)
                return

            await self.persist_orders(rows, report)

        return await self._run(report, body)

    async def run_incremental_sync(self, window_hours: int = DEFAULT_INCREMENTAL_WINDOW_HOURS) -> SyncRunReport:
        """
        Sync orders created/updated in the last ``window_hours``.

        Records whose stored ``updated_at`` is present and not older than the
        incoming one are skipped.
        """
        if window_hours <= 0:
            raise ValueError("window_hours must be positive")

        report = self.monitor.start("incremental", window_hours=window_hours)

        async def body():
            date_range = incremental_date_range(self.clock(), window_hours)
            logger.info(f"Incremental sync window: {date_range['start_date']} to {date_range['end_date']}")

            result = await self.fetcher.fetch_all(
                max_pages=INCREMENTAL_SYNC_MAX_PAGES,
                on_retry=report.record_retry,
                **date_range,
            )
            report.fetched = len(result.orders)
            report.pages_fetched = result.pages_fetched
            report.stop_reason = result.stop_reason

            rows = transform_orders(result.orders)
            if not rows:
                logger.info("No orders to sync")
                return

            local = await self.db_executor.call(
                lambda: self.repository.get_updated_at_map([row["id"] for row in rows]),
                on_retry=report.record_retry,
            )
            to_sync = [row for row in rows if not is_unchanged(row, local.get(row["id"]))]
            report.skipped = len(rows) - len(to_sync)

            logger.info(f"{len(to_sync)} orders need sync (new or updated), {report.skipped} unchanged")
            await self.persist_orders(to_sync, report)

        return await self._run(report, body)

    async def upsert_webhook_order(self, order_data: Dict[str, Any]) -> int:
        """Persist a single order pushed by webhook."""
        row = transform_order(order_data)
        if row is None:
            raise ValueError("Webhook order has no id")
        return await self.db_executor.call(lambda: self.repository.upsert_orders([row]))

    async def _run(self, report: SyncRunReport, body: Callable[[], Awaitable[None]]) -> SyncRunReport:
        set_sync_context(report.source, window_hours=report.window_hours)

        locked = False
        if self.state_store is not None:
            try:
                locked = await self.state_store.acquire_lock()
            except Exception as e:
                logger.warning(f"Sync lock unavailable, running unlocked: {e}")
                locked = None
            if locked is False:
                return self.monitor.skip(report, "Another sync is already in progress")

        try:
            await body()
            await self.monitor.complete(report)
        except Exception as e:
            await self.monitor.fail(report, e)
        finally:
            if locked:
                await self._release_lock()

        await self._record_history(report)
        return report

    async def _release_lock(self):
        try:
            await self.state_store.release_lock()
        except Exception as e:
            logger.warning(f"Failed to release sync lock: {e}")

    async def _record_history(self, report: SyncRunReport):
        if self.state_store is None:
            return
        try:
            await self.state_store.record_run(report.to_dict())
        except Exception as e:
            logger.warning(f"Failed to record sync history: {e}")
