"""Order sync worker FastAPI application."""

import logging
from typing import Optional

import sentry_sdk
from fastapi import FastAPI
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from orders_api.config.settings import settings
from orders_api.core.logger import setup_logger
from orders_worker.server.routes import router
from orders_worker.services.container import WorkerServices, build_services, prepare_database
from orders_worker.services.reconciliation_scheduler import SyncScheduler

logger = setup_logger(__name__)


def init_monitoring() -> None:
    """Initialize GlitchTip error monitoring (Sentry-compatible)."""
    if not settings.glitchtip_dsn:
        return
    try:
        sentry_sdk.init(
            dsn=settings.glitchtip_dsn,
            environment=settings.environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                LoggingIntegration(
                    level=None,  # Capture all log levels as breadcrumbs
                    event_level=logging.ERROR  # Send ERROR logs as events
                ),
            ],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.0,
            send_default_pii=False,
        )
        logger.info("GlitchTip error monitoring initialized")
    except Exception as e:
        logger.error(f"Failed to initialize GlitchTip: {e}")


def create_app(services: Optional[WorkerServices] = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        services: Pre-built services (tests). When omitted, services are
            built from settings on startup and closed on shutdown.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Order Sync Worker",
        description="Keeps a local order store consistent with the upstream order API",
        version="1.0.0",
    )
    app.state.services = services

    app.include_router(router)

    if services is not None:
        return app

    init_monitoring()

    @app.on_event("startup")
    async def startup():
        """Build services, prepare the database and start the scheduler."""
        try:
            logger.info("=" * 60)
            logger.info("Starting Order Sync Worker...")
            logger.info("=" * 60)

            built = build_services(settings)
            await prepare_database(built)
            built.api_cache.start_sweeper()
            built.probe_cache.start_sweeper()

            if settings.scheduler_enabled:
                built.scheduler = SyncScheduler(
                    orchestrator=built.orchestrator,
                    reconciler=built.reconciler,
                    interval_hours=settings.incremental_sync_interval_hours,
                    window_hours=settings.incremental_window_hours,
                    validation_hour=settings.daily_validation_hour,
                    validation_auto_fix=settings.validation_auto_fix,
                )
                built.scheduler.start()
            else:
                logger.info("Scheduler disabled")

            app.state.services = built

            logger.info(f"Redis sync lock: {'enabled' if built.state_store else 'disabled'}")
            logger.info("Order Sync Worker started successfully!")

        except Exception as e:
            logger.error(f"Failed to start worker: {e}", exc_info=True)
            raise

    @app.on_event("shutdown")
    async def shutdown():
        """Graceful shutdown: stop scheduler and release connections."""
        logger.info("Shutting down Order Sync Worker...")
        built = app.state.services
        if built is not None:
            await built.close()
        logger.info("Shutdown completed")

    return app


# Create app instance
app = create_app()
