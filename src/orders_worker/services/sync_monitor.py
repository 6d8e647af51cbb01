"""
Sync run monitoring.

Tracks per-run counters, logs the outcome, raises alerts on degraded runs
and appends each run to the metrics sidecar file.
"""

import json
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from orders_api.config.constants import METRICS_HISTORY_LIMIT, SUCCESS_RATE_ALERT_THRESHOLD
from orders_api.core.logger import setup_logger
from orders_api.core.monitoring import capture_exception, capture_message
from orders_api.integrations.alerts import Alert, AlertNotifier

logger = setup_logger(__name__)

STATUS_RUNNING = "running"
STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncRunReport:
    """Counters and outcome of one sync run."""
    source: str  # "full", "incremental", "repair"
    window_hours: Optional[int] = None
    dry_run: bool = False
    started_at: str = field(default_factory=_utcnow_iso)
    completed_at: Optional[str] = None
    fetched: int = 0
    synced: int = 0
    skipped: int = 0
    stale: int = 0
    batches: int = 0
    failed_batches: int = 0
    retries: int = 0
    pages_fetched: int = 0
    stop_reason: Optional[str] = None
    duration_seconds: float = 0.0
    success_rate: float = 100.0
    status: str = STATUS_RUNNING
    errors: List[str] = field(default_factory=list)

    def record_batch(self, count: int, success: bool, written: Optional[int] = None) -> None:
        """Count one batch; ``written`` below ``count`` means stored rows were newer."""
        self.batches += 1
        if not success:
            self.failed_batches += 1
            return
        written = count if written is None else written
        self.synced += written
        self.stale += count - written

    def record_retry(self, *_args) -> None:
        self.retries += 1

    @property
    def to_persist(self) -> int:
        """Orders the run tried to write (fetched minus unchanged and stale)."""
        return max(self.fetched - self.skipped - self.stale, 0)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SyncMonitor:
    """Finalizes run reports: logging, alerts, metrics sidecar."""

    def __init__(
        self,
        notifier: Optional[AlertNotifier] = None,
        metrics_file: Optional[str] = None,
        history_limit: int = METRICS_HISTORY_LIMIT,
    ):
        self.notifier = notifier
        self.metrics_file = Path(metrics_file) if metrics_file else None
        self.history_limit = history_limit
        self.last_report: Optional[SyncRunReport] = None
        self._started: Dict[int, float] = {}

    def start(self, source: str, window_hours: Optional[int] = None, dry_run: bool = False) -> SyncRunReport:
        report = SyncRunReport(source=source, window_hours=window_hours, dry_run=dry_run)
        self._started[id(report)] = time.monotonic()
        logger.info(
            f"Sync started: {source}",
            extra={"context": {"window_hours": window_hours, "dry_run": dry_run}},
        )
        return report

    def _finish(self, report: SyncRunReport) -> None:
        report.completed_at = _utcnow_iso()
        started = self._started.pop(id(report), None)
        if started is not None:
            report.duration_seconds = round(time.monotonic() - started, 3)

    async def complete(self, report: SyncRunReport) -> SyncRunReport:
        """Close a run that reached the end of its batches."""
        self._finish(report)

        to_persist = report.to_persist
        report.success_rate = round(report.synced / to_persist * 100, 2) if to_persist > 0 else 100.0
        report.status = STATUS_PARTIAL if report.failed_batches > 0 else STATUS_SUCCESS

        logger.info(
            f"Sync completed: {report.source} ({report.status})",
            extra={"context": {**report.to_dict(), "errors": report.errors[:5]}},
        )

        if report.success_rate < SUCCESS_RATE_ALERT_THRESHOLD:
            await self._alert(Alert(
                level="warning",
                title="Sync Completed with Issues",
                message=f"Success rate: {report.success_rate:.2f}%",
                context=self._alert_context(report),
            ))

        if report.failed_batches > 0:
            await self._alert(Alert(
                level="error",
                title="Sync Failed Batches",
                message=f"{report.failed_batches} batches failed during sync",
                context=self._alert_context(report),
            ))
            capture_message(
                f"{report.source} sync: {report.failed_batches} failed batches",
                level="warning",
                context=self._alert_context(report),
            )

        self._record(report)
        return report

    async def fail(self, report: SyncRunReport, error: BaseException) -> SyncRunReport:
        """Close a run that aborted."""
        self._finish(report)
        report.status = STATUS_FAILED
        report.success_rate = 0.0
        report.errors.append(str(error))

        logger.error(
            f"Sync failed: {report.source}: {error}",
            exc_info=error,
            extra={"context": self._alert_context(report)},
        )
        capture_exception(error, context=self._alert_context(report))

        await self._alert(Alert(
            level="critical",
            title="Sync FAILED",
            message=str(error) or type(error).__name__,
            context=self._alert_context(report),
        ))

        self._record(report)
        return report

    def skip(self, report: SyncRunReport, reason: str) -> SyncRunReport:
        """Close a run that never started (e.g. another run holds the lock)."""
        self._finish(report)
        report.status = STATUS_SKIPPED
        report.errors.append(reason)
        logger.warning(f"Sync skipped: {report.source}: {reason}")
        return report

    def _alert_context(self, report: SyncRunReport) -> Dict[str, Any]:
        return {
            "source": report.source,
            "fetched": report.fetched,
            "synced": report.synced,
            "failed_batches": report.failed_batches,
            "retries": report.retries,
            "duration_seconds": report.duration_seconds,
        }

    async def _alert(self, alert: Alert) -> None:
        if self.notifier is None:
            logger.warning(f"Alert not sent (no notifier): {alert.title}")
            return
        await self.notifier.send_alert(alert)

    def _record(self, report: SyncRunReport) -> None:
        self.last_report = report
        self._write_metrics_file(report)

    def _write_metrics_file(self, report: SyncRunReport) -> None:
        if self.metrics_file is None:
            return

        try:
            history = self.read_metrics()
            history.append(report.to_dict())
            history = history[-self.history_limit:]
            self.metrics_file.write_text(json.dumps(history, indent=2, default=str), encoding="utf-8")
            logger.debug(f"Metrics written to {self.metrics_file}")
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to write metrics file: {e}")

    def read_metrics(self) -> List[Dict[str, Any]]:
        """Run history from the metrics sidecar, oldest first."""
        if self.metrics_file is None or not self.metrics_file.exists():
            return []
        try:
            data = json.loads(self.metrics_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read metrics file: {e}")
            return []
        return data if isinstance(data, list) else []
