"""Worker API routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from orders_api.core.event_logger import get_event_statistics
from orders_api.core.logger import setup_logger
from orders_api.core.monitoring import capture_exception
from orders_api.handlers.webhook import WebhookRejected, handle_webhook_event
from orders_worker.services.health import HEALTHY, breaker_states, run_health_checks
from orders_worker.services.reconciliation_service import STATUS_OK, STATUS_WARNING
from orders_worker.services.sync_monitor import (
    STATUS_FAILED,
    STATUS_SKIPPED,
    SyncRunReport,
)

logger = setup_logger(__name__)
router = APIRouter()

NO_CACHE_HEADERS = {"Cache-Control": "no-store, no-cache, must-revalidate"}


def get_services(request: Request):
    """Services container attached to the app (503 until startup completes)."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Worker not initialized")
    return services


def _run_response(report: SyncRunReport) -> JSONResponse:
    status_code = 200
    if report.status == STATUS_SKIPPED:
        status_code = 409
    elif report.status == STATUS_FAILED:
        status_code = 500
    return JSONResponse(
        {"success": report.status not in (STATUS_FAILED, STATUS_SKIPPED), "report": report.to_dict()},
        status_code=status_code,
    )


@router.get("/")
async def root() -> dict:
    """Root endpoint with basic service info."""
    return {
        "service": "Order Sync Worker",
        "version": "1.0.0",
        "endpoints": {
            "full_sync": "POST /api/sync",
            "incremental_sync": "POST /api/sync/incremental?hours=24",
            "validate": "GET /api/validate?autofix=false",
            "sync_status": "GET /api/sync/status",
            "webhook": "POST /webhook/orders",
            "webhook_stats": "GET /webhook/orders/stats",
            "health": "GET /health",
            "docs": "GET /docs",
        },
    }


@router.get("/health")
async def health_check(request: Request) -> JSONResponse:
    """Health check: store, upstream, last sync age and breakers.

    Returns 200 when healthy, 503 when degraded.
    """
    services = get_services(request)
    result = await run_health_checks(
        services.repository,
        services.api_client,
        services.probe_cache,
        services.breakers,
    )
    status_code = 200 if result["status"] == HEALTHY else 503
    return JSONResponse(result, status_code=status_code, headers=NO_CACHE_HEADERS)


@router.post("/api/sync")
async def full_sync(
    request: Request,
    max_pages: Optional[int] = Query(None, ge=1),
    dry_run: bool = False,
) -> JSONResponse:
    """Run a full sync (all orders up to the page ceiling)."""
    services = get_services(request)
    logger.info(f"Full sync requested (max_pages={max_pages}, dry_run={dry_run})")
    report = await services.orchestrator.run_full_sync(max_pages=max_pages, dry_run=dry_run)
    return _run_response(report)


@router.post("/api/sync/incremental")
async def incremental_sync(
    request: Request,
    hours: int = Query(24, ge=1, le=24 * 30),
) -> JSONResponse:
    """Sync orders created or updated in the last ``hours`` hours."""
    services = get_services(request)
    logger.info(f"Incremental sync requested (last {hours} hours)")
    report = await services.orchestrator.run_incremental_sync(window_hours=hours)
    return _run_response(report)


@router.get("/api/validate")
async def validate(request: Request, autofix: bool = False) -> JSONResponse:
    """Compare the store with upstream samples.

    Returns:
        200 OK, 207 WARNING, 500 CRITICAL or validation error
    """
    services = get_services(request)
    try:
        report = await services.reconciler.run_validation(auto_fix=autofix)
    except Exception as e:
        logger.error(f"Validation failed: {e}", exc_info=True)
        capture_exception(e, context={"autofix": autofix})
        return JSONResponse({"success": False, "error": str(e)}, status_code=500)

    if report.status == STATUS_OK:
        status_code = 200
    elif report.status == STATUS_WARNING:
        status_code = 207
    else:
        status_code = 500

    return JSONResponse(report.to_dict(), status_code=status_code)


@router.get("/api/sync/status")
async def sync_status(request: Request) -> dict:
    """Recent runs, lock state, next scheduled runs and breaker states."""
    services = get_services(request)

    status = {
        "sync_in_progress": None,
        "last_sync_at": None,
        "last_full_sync_at": None,
        "history": [],
        "validation_history": [],
    }
    if services.state_store is not None:
        try:
            status.update(await services.state_store.get_status())
        except Exception as e:
            logger.error(f"Failed to read sync state: {e}")
            status["state_error"] = str(e)
    else:
        history = services.monitor.read_metrics()[-10:]
        status["history"] = list(reversed(history))
        if services.monitor.last_report is not None:
            status["last_sync_at"] = services.monitor.last_report.completed_at
        status["validation_history"] = await services.reconciler.get_history()

    last_validation = services.reconciler.last_report
    status["last_validation"] = last_validation.to_dict() if last_validation else None
    status["scheduler"] = {
        "running": bool(services.scheduler and services.scheduler.is_running),
        "next_runs": services.scheduler.get_next_run_times() if services.scheduler else {},
    }
    status["circuit_breakers"] = breaker_states(services.breakers)
    return status


@router.post("/webhook/orders")
async def order_webhook(request: Request) -> JSONResponse:
    """Receive an order event pushed by the upstream platform.

    Returns:
        200 processed, 400 invalid payload, 401 invalid signature,
        500 persistence failure
    """
    services = get_services(request)
    raw_body = await request.body()
    signature = request.headers.get(services.webhook_signature_header)

    try:
        result = await handle_webhook_event(
            raw_body,
            signature,
            services.orchestrator,
            secret=services.webhook_secret,
        )
    except WebhookRejected as e:
        return JSONResponse({"error": e.reason, **e.details}, status_code=e.status_code)

    return JSONResponse(result.body, status_code=result.status_code)


@router.get("/webhook/orders/stats")
async def webhook_stats(date: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}-\d{2}$")) -> dict:
    """Webhook event statistics for a day (UTC, defaults to today)."""
    return get_event_statistics(date)
