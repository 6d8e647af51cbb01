"""Order webhook handling.

Webhooks are a best-effort supplement to polling: an accepted event is
upserted through the same path as the sync runs, and every outcome is written
to the webhook event log.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from orders_api.core.event_logger import log_webhook_event
from orders_api.core.logger import setup_logger
from orders_api.core.monitoring import capture_exception, set_sync_context
from orders_api.core.signature import validate_webhook_request
from orders_api.models.order import WebhookPayload

logger = setup_logger(__name__)


class WebhookRejected(Exception):
    """Webhook refused before processing (bad signature or payload)."""

    def __init__(self, status_code: int, reason: str, details: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.reason = reason
        self.details = details or {}
        super().__init__(reason)


@dataclass
class WebhookResult:
    status_code: int
    body: Dict[str, Any]


async def handle_webhook_event(
    raw_body: bytes,
    signature_header: Optional[str],
    orchestrator: Any,
    secret: Optional[str] = None,
    logs_dir: Optional[Path] = None,
) -> WebhookResult:
    """
    Validate, parse and persist one order webhook.

    Args:
        raw_body: Raw request body as received
        signature_header: Value of the signature header
        orchestrator: Object exposing ``upsert_webhook_order(order_data)``
        secret: Shared webhook secret; signature checks are skipped when unset
        logs_dir: Event log directory override (tests)

    Returns:
        WebhookResult with the HTTP status and response body

    Raises:
        WebhookRejected: invalid signature (401) or invalid payload (400)
    """
    body_size = len(raw_body or b"")

    def reject(status_code: int, reason: str, event=None, order_id=None, details=None):
        log_webhook_event(
            event, order_id, "rejected", status_code,
            error=reason, body_size=body_size, logs_dir=logs_dir,
        )
        return WebhookRejected(status_code, reason, details)

    if secret:
        is_valid, error = validate_webhook_request(raw_body, signature_header, secret)
        if not is_valid:
            logger.warning(f"Webhook rejected: {error}")
            raise reject(401, error or "Invalid signature")
    else:
        logger.warning("Webhook secret not configured, skipping signature validation")

    try:
        body = json.loads(raw_body)
    except (ValueError, TypeError) as e:
        logger.warning(f"Webhook body is not valid JSON: {e}")
        raise reject(400, "Invalid JSON")

    if not isinstance(body, dict):
        raise reject(400, "Invalid payload")

    try:
        payload = WebhookPayload.model_validate(body)
    except ValidationError as e:
        logger.warning(
            "Webhook payload validation failed",
            extra={"context": {"received_keys": sorted(body.keys()), "errors": e.error_count()}},
        )
        raise reject(
            400, "Invalid payload",
            event=body.get("event") if isinstance(body.get("event"), str) else None,
            details={"received_keys": sorted(body.keys())},
        )

    logger.info(f"Processing webhook: {payload.event} order_id={payload.order_id}")
    set_sync_context("webhook", event=payload.event, order_id=payload.order_id)

    order_data = dict(payload.data)
    order_data.setdefault("id", payload.order_id)

    try:
        await orchestrator.upsert_webhook_order(order_data)
    except Exception as e:
        logger.error(f"Error persisting webhook order {payload.order_id}: {e}", exc_info=True)
        capture_exception(e, context={"event": payload.event, "order_id": payload.order_id})
        log_webhook_event(
            payload.event, payload.order_id, "failed", 500,
            error=str(e), body_size=body_size, logs_dir=logs_dir,
        )
        return WebhookResult(500, {"error": "Failed to process webhook"})

    log_webhook_event(
        payload.event, payload.order_id, "processed", 200,
        body_size=body_size, logs_dir=logs_dir,
    )
    return WebhookResult(
        200, {"status": "success", "order_id": payload.order_id, "event": payload.event}
    )
