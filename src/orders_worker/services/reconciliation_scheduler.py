"""
Sync Scheduler using APScheduler.

Manages scheduled jobs:
- Incremental sync: every ``incremental_sync_interval_hours``
- Daily validation: at ``daily_validation_hour`` (UTC), with optional auto-fix
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from orders_api.core.logger import setup_logger
from orders_worker.services.reconciliation_service import DriftReconciler
from orders_worker.services.sync_orchestrator import SyncOrchestrator

logger = setup_logger(__name__)


class SyncScheduler:
    """Manages scheduled sync and validation jobs."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        reconciler: DriftReconciler,
        interval_hours: int = 1,
        window_hours: int = 24,
        validation_hour: int = 4,
        validation_auto_fix: bool = True,
    ):
        self.orchestrator = orchestrator
        self.reconciler = reconciler
        self.interval_hours = interval_hours
        self.window_hours = window_hours
        self.validation_hour = validation_hour
        self.validation_auto_fix = validation_auto_fix
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self._started = False

    def start(self):
        """Start scheduler with configured jobs."""
        if self._started:
            logger.warning("Scheduler already started")
            return

        self.scheduler.add_job(
            self._run_incremental_sync,
            IntervalTrigger(hours=self.interval_hours),
            id="incremental_sync",
            name="Incremental Order Sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Added incremental sync job (every {self.interval_hours} hour(s))")

        self.scheduler.add_job(
            self._run_daily_validation,
            CronTrigger(hour=self.validation_hour, minute=0, timezone="UTC"),
            id="daily_validation",
            name="Daily Drift Validation",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Added daily validation job (at {self.validation_hour:02d}:00 UTC)")

        self.scheduler.start()
        self._started = True
        logger.info("Sync scheduler started")

    def stop(self):
        """Gracefully stop scheduler."""
        if not self._started:
            return

        self.scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Sync scheduler stopped")

    async def _run_incremental_sync(self):
        """Wrapper for scheduled sync with error handling."""
        try:
            logger.info("Scheduled incremental sync triggered")
            report = await self.orchestrator.run_incremental_sync(self.window_hours)
            logger.info(f"Scheduled sync finished: {report.status} ({report.synced} orders)")
        except Exception as e:
            logger.error(f"Scheduled sync failed: {e}", exc_info=True)

    async def _run_daily_validation(self):
        """Wrapper for daily validation with error handling."""
        try:
            logger.info("Daily validation triggered")
            report = await self.reconciler.run_validation(auto_fix=self.validation_auto_fix)
            logger.info(f"Daily validation finished: {report.status}")
        except Exception as e:
            logger.error(f"Daily validation failed: {e}", exc_info=True)

    def get_next_run_times(self) -> dict:
        """Get next scheduled run times (UTC, ISO format)."""
        result = {}

        for job in self.scheduler.get_jobs():
            next_run = job.next_run_time
            result[job.id] = next_run.isoformat() if next_run else None

        return result

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._started and self.scheduler.running
