"""
Reconciliation Service for the local order store.

Compares the store against sampled upstream pages to detect drift:

- count comparison: total local orders vs. a deep upstream sample
- missing orders: sampled upstream ids absent locally
- outdated orders: sampled orders whose upstream ``updated_at`` is newer

Optionally repairs missing/outdated orders through the orchestrator's
batched write path.
"""

import time
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from orders_api.api.pagination import PaginatedFetcher
from orders_api.config.constants import (
    ACCURACY_OK_THRESHOLD,
    ACCURACY_WARNING_THRESHOLD,
    MISSING_WARNING_LIMIT,
    VALIDATION_COUNT_SAMPLE_PAGES,
    VALIDATION_MISSING_SAMPLE_PAGES,
    VALIDATION_OUTDATED_SAMPLE_PAGES,
)
from orders_api.core.logger import setup_logger
from orders_api.core.monitoring import capture_message
from orders_api.integrations.alerts import Alert, AlertNotifier
from orders_api.integrations.retry import RetryExecutor
from orders_worker.repositories.base import OrderRepository
from orders_worker.services.sync_orchestrator import SyncOrchestrator
from orders_worker.services.sync_state import VALIDATION_HISTORY_LIMIT, SyncStateStore
from orders_worker.services.transform import parse_timestamp, transform_orders

logger = setup_logger(__name__)

STATUS_OK = "OK"
STATUS_WARNING = "WARNING"
STATUS_CRITICAL = "CRITICAL"

# Ids listed in a report (counts are always complete)
REPORT_ID_SAMPLE = 20


def compute_accuracy(local_count: int, upstream_count: int) -> float:
    """Local count as a percentage of the upstream sample, 2 decimals.

    The upstream count is a sample, so values above 100 are possible.
    An empty upstream sample counts as fully accurate.
    """
    if upstream_count <= 0:
        return 100.0
    return round(local_count / upstream_count * 100, 2)


def classify(accuracy: float, missing: int) -> str:
    """OK / WARNING / CRITICAL from accuracy and missing count."""
    if accuracy >= ACCURACY_OK_THRESHOLD and missing == 0:
        return STATUS_OK
    if accuracy >= ACCURACY_WARNING_THRESHOLD or missing < MISSING_WARNING_LIMIT:
        return STATUS_WARNING
    return STATUS_CRITICAL


@dataclass
class ValidationReport:
    """Outcome of one validation run."""
    timestamp: str
    counts: Dict[str, int]
    inconsistencies: Dict[str, int]
    accuracy: float
    status: str
    fixed: bool = False
    repaired: int = 0
    repair_failed_batches: int = 0
    duration_seconds: float = 0.0
    missing_ids: List[int] = field(default_factory=list)
    outdated_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def summary(self) -> Dict[str, Any]:
        """History entry: the report without the sampled id lists."""
        entry = self.to_dict()
        entry.pop("missing_ids")
        entry.pop("outdated_ids")
        return entry


class DriftReconciler:
    """Detects and optionally repairs drift between upstream and the store."""

    def __init__(
        self,
        fetcher: PaginatedFetcher,
        repository: OrderRepository,
        orchestrator: SyncOrchestrator,
        db_executor: RetryExecutor,
        notifier: Optional[AlertNotifier] = None,
        state_store: Optional[SyncStateStore] = None,
        count_sample_pages: int = VALIDATION_COUNT_SAMPLE_PAGES,
        missing_sample_pages: int = VALIDATION_MISSING_SAMPLE_PAGES,
        outdated_sample_pages: int = VALIDATION_OUTDATED_SAMPLE_PAGES,
    ):
        self.fetcher = fetcher
        self.repository = repository
        self.orchestrator = orchestrator
        self.db_executor = db_executor
        self.notifier = notifier
        self.state_store = state_store
        self.count_sample_pages = count_sample_pages
        self.missing_sample_pages = missing_sample_pages
        self.outdated_sample_pages = outdated_sample_pages
        self.last_report: Optional[ValidationReport] = None
        # Used when no state store is configured
        self.history = deque(maxlen=VALIDATION_HISTORY_LIMIT)

    async def _sample(self, max_pages: int) -> List[Dict[str, Any]]:
        result = await self.fetcher.fetch_all(max_pages=max_pages, use_cache=True)
        return result.orders

    async def compare_counts(self) -> Dict[str, int]:
        logger.info("Comparing order counts...")
        api_orders = await self._sample(self.count_sample_pages)
        db_count = await self.db_executor.call(self.repository.count_orders)
        return {
            "api": len(api_orders),
            "database": db_count,
            "difference": len(api_orders) - db_count,
        }

    async def find_missing_orders(self) -> List[Dict[str, Any]]:
        """Sampled upstream orders with no local row."""
        logger.info("Finding missing orders...")
        api_orders = await self._sample(self.missing_sample_pages)
        ids = [order["id"] for order in api_orders]
        existing = await self.db_executor.call(lambda: self.repository.get_existing_ids(ids))

        missing = [order for order in api_orders if order["id"] not in existing]
        logger.info(f"Found {len(missing)} missing orders")
        return missing

    async def find_outdated_orders(self) -> List[Dict[str, Any]]:
        """Sampled upstream orders strictly newer than the stored copy.

        Orders absent locally are missing, not outdated.
        """
        logger.info("Finding outdated orders...")
        api_orders = await self._sample(self.outdated_sample_pages)
        ids = [order["id"] for order in api_orders]
        local = await self.db_executor.call(lambda: self.repository.get_updated_at_map(ids))

        outdated = []
        for order in api_orders:
            if order["id"] not in local:
                continue
            local_updated_at = local[order["id"]]
            upstream_updated_at = parse_timestamp(order.get("updated_at"))
            if local_updated_at is None or upstream_updated_at is None:
                continue
            if upstream_updated_at > local_updated_at:
                outdated.append(order)

        logger.info(f"Found {len(outdated)} outdated orders")
        return outdated

    async def run_validation(self, auto_fix: bool = False) -> ValidationReport:
        """
        Run the three drift checks and optionally repair.

        Args:
            auto_fix: Upsert missing and outdated orders found in the samples

        Returns:
            ValidationReport (status computed from the pre-repair state)
        """
        started = time.monotonic()
        logger.info(f"Starting validation (auto_fix={auto_fix})...")

        counts = await self.compare_counts()
        missing = await self.find_missing_orders()
        outdated = await self.find_outdated_orders()

        accuracy = compute_accuracy(counts["database"], counts["api"])
        status = classify(accuracy, len(missing))

        report = ValidationReport(
            timestamp=datetime.now(timezone.utc).isoformat(),
            counts=counts,
            inconsistencies={"missing": len(missing), "outdated": len(outdated)},
            accuracy=accuracy,
            status=status,
            missing_ids=[order["id"] for order in missing][:REPORT_ID_SAMPLE],
            outdated_ids=[order["id"] for order in outdated][:REPORT_ID_SAMPLE],
        )

        if auto_fix and (missing or outdated):
            await self._repair(missing + outdated, report)

        report.duration_seconds = round(time.monotonic() - started, 3)

        log = logger.warning if status != STATUS_OK else logger.info
        log(
            f"Validation completed: {status} (accuracy {accuracy:.2f}%)",
            extra={"context": {
                "counts": counts,
                "inconsistencies": report.inconsistencies,
                "fixed": report.fixed,
            }},
        )

        if status == STATUS_CRITICAL:
            await self._alert_critical(report)

        self.last_report = report
        await self._record_history(report)
        return report

    async def get_history(self) -> List[Dict[str, Any]]:
        """Validation summaries, newest first."""
        if self.state_store is not None:
            return await self.state_store.get_validation_history()
        return list(self.history)

    async def _record_history(self, report: ValidationReport) -> None:
        if self.state_store is None:
            self.history.appendleft(report.summary())
            return
        try:
            await self.state_store.record_validation(report.summary())
        except Exception as e:
            logger.warning(f"Failed to record validation history: {e}")

    async def _repair(self, orders: List[Dict[str, Any]], report: ValidationReport) -> None:
        # An order can only be missing or outdated, never both
        rows = transform_orders(orders)
        logger.info(f"Auto-fixing {len(rows)} inconsistent orders...")

        monitor = self.orchestrator.monitor
        run = monitor.start("repair")
        run.fetched = len(rows)
        try:
            await self.orchestrator.persist_orders(rows, run)
            await monitor.complete(run)
        except Exception as e:
            await monitor.fail(run, e)

        report.repaired = run.synced
        report.repair_failed_batches = run.failed_batches
        report.fixed = run.status == "success"

    async def _alert_critical(self, report: ValidationReport) -> None:
        context = {
            "accuracy": report.accuracy,
            "api": report.counts["api"],
            "database": report.counts["database"],
            "missing": report.inconsistencies["missing"],
            "outdated": report.inconsistencies["outdated"],
        }
        capture_message("Order store validation CRITICAL", level="error", context=context)
        if self.notifier is None:
            return
        await self.notifier.send_alert(Alert(
            level="critical",
            title="Validation CRITICAL",
            message=f"Store accuracy {report.accuracy:.2f}% with {report.inconsistencies['missing']} missing orders",
            context=context,
        ))
