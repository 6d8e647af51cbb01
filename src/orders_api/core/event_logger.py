"""
Webhook Event Logger

Logs every incoming order webhook (accepted or rejected) to daily JSONL
files for analysis and debugging.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from orders_api.core.logger import setup_logger

logger = setup_logger(__name__)

LOGS_DIR = Path(os.getenv("LOG_DIR", "logs"))


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def get_log_file_for_date(date_str: Optional[str] = None, logs_dir: Optional[Path] = None) -> Path:
    """
    Get the log file path for a specific date.

    Args:
        date_str: Date in YYYY-MM-DD format. If None, uses today's date (UTC).
        logs_dir: Directory override (defaults to LOG_DIR)
    """
    return (logs_dir or LOGS_DIR) / f"webhook_events_{date_str or _today()}.jsonl"


def log_webhook_event(
    event: Optional[str],
    order_id: Optional[int],
    status: str,
    status_code: int,
    error: Optional[str] = None,
    body_size: int = 0,
    logs_dir: Optional[Path] = None,
) -> str:
    """
    Append a webhook outcome to today's JSONL file.

    Args:
        event: Event name (None if the payload never parsed)
        order_id: Order id from the payload, if any
        status: Outcome (processed, rejected, failed)
        status_code: HTTP status returned to the sender
        error: Rejection or failure reason
        body_size: Raw request body size in bytes
        logs_dir: Directory override (tests)

    Returns:
        Path to the log file where the event was written
    """
    log_file = get_log_file_for_date(logs_dir=logs_dir)

    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "order_id": order_id,
        "status": status,
        "status_code": status_code,
        "error": error,
        "body_size": body_size,
    }

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        with open(log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(log_entry, ensure_ascii=False) + "\n")

        logger.debug(f"Logged webhook event ({event}, order_id={order_id}) to {log_file}")

    except OSError as e:
        logger.error(f"Failed to write webhook event to log file: {e}")

    return str(log_file)


def read_events_from_log(date_str: Optional[str] = None, logs_dir: Optional[Path] = None) -> List[Dict[str, Any]]:
    """Read all webhook events from a day's log file."""
    log_file = get_log_file_for_date(date_str, logs_dir)

    if not log_file.exists():
        return []

    events = []
    try:
        with open(log_file, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError as e:
                    logger.warning(f"Failed to parse line {line_num} in {log_file}: {e}")

    except OSError as e:
        logger.error(f"Failed to read log file {log_file}: {e}")
        return []

    return events


def get_event_statistics(date_str: Optional[str] = None, logs_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    Get statistics about webhook events for a given date.

    Returns:
        Totals, counts per event name and per outcome, distinct orders
    """
    events = read_events_from_log(date_str, logs_dir)

    events_by_type: Dict[str, int] = {}
    events_by_status: Dict[str, int] = {}
    order_ids = set()

    for entry in events:
        name = entry.get("event") or "unknown"
        status = entry.get("status") or "unknown"
        events_by_type[name] = events_by_type.get(name, 0) + 1
        events_by_status[status] = events_by_status.get(status, 0) + 1
        if entry.get("order_id") is not None:
            order_ids.add(entry["order_id"])

    return {
        "date": date_str or _today(),
        "total_events": len(events),
        "events_by_type": dict(sorted(events_by_type.items())),
        "events_by_status": dict(sorted(events_by_status.items())),
        "unique_orders": len(order_ids),
    }
