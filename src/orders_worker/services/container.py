"""Service wiring shared by the HTTP app and the CLI."""

from dataclasses import dataclass
from typing import Optional

from orders_api.api.client import OrderAPIClient
from orders_api.api.pagination import PaginatedFetcher
from orders_api.config.settings import Settings
from orders_api.core.cache import TTLCache
from orders_api.core.logger import setup_logger
from orders_api.integrations.alerts import AlertNotifier
from orders_api.integrations.circuit_breaker import CircuitBreaker
from orders_api.integrations.retry import RetryExecutor, RetryOptions, is_transient_store_error
from orders_worker.db.base import get_engine, get_session_factory, init_db
from orders_worker.repositories.base import OrderRepository
from orders_worker.repositories.sql_repository import SQLOrderRepository
from orders_worker.services.reconciliation_scheduler import SyncScheduler
from orders_worker.services.reconciliation_service import DriftReconciler
from orders_worker.services.sync_monitor import SyncMonitor
from orders_worker.services.sync_orchestrator import SyncOrchestrator
from orders_worker.services.sync_state import SyncStateStore

logger = setup_logger(__name__)


@dataclass
class WorkerServices:
    """Everything a request handler or CLI command needs."""
    api_client: OrderAPIClient
    api_cache: TTLCache
    probe_cache: TTLCache
    api_breaker: CircuitBreaker
    db_breaker: CircuitBreaker
    repository: OrderRepository
    orchestrator: SyncOrchestrator
    reconciler: DriftReconciler
    monitor: SyncMonitor
    notifier: AlertNotifier
    state_store: Optional[SyncStateStore] = None
    scheduler: Optional[SyncScheduler] = None
    engine: Optional[object] = None
    webhook_secret: Optional[str] = None
    webhook_signature_header: str = "x-webhook-signature"

    @property
    def breakers(self):
        return [self.api_breaker, self.db_breaker]

    async def close(self):
        """Release connections and background tasks."""
        if self.scheduler is not None:
            self.scheduler.stop()
        await self.api_cache.stop_sweeper()
        await self.probe_cache.stop_sweeper()
        await self.api_client.close()
        if self.state_store is not None:
            await self.state_store.close()
        if self.engine is not None:
            await self.engine.dispose()


def build_services(
    settings: Settings,
    max_retries: Optional[int] = None,
    batch_size: Optional[int] = None,
) -> WorkerServices:
    """
    Wire the worker from settings.

    Args:
        settings: Application settings
        max_retries: Override for settings.retry_max_attempts
        batch_size: Override for the upsert batch size

    Raises:
        ValueError: upstream credentials missing
    """
    api_cache = TTLCache()
    api_client = OrderAPIClient(
        base_url=settings.order_api_url,
        api_token=settings.order_api_token,
        store_name=settings.order_api_store,
        timeout=settings.order_api_timeout_seconds,
        cache=api_cache,
    )

    api_breaker = CircuitBreaker(
        "order_api",
        threshold=settings.api_breaker_threshold,
        reset_timeout=settings.api_breaker_reset_seconds,
    )
    db_breaker = CircuitBreaker(
        "database",
        threshold=settings.db_breaker_threshold,
        reset_timeout=settings.db_breaker_reset_seconds,
    )

    retries = settings.retry_max_attempts if max_retries is None else max_retries
    api_executor = RetryExecutor(api_breaker, RetryOptions(
        max_retries=retries,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
    ))
    db_executor = RetryExecutor(db_breaker, RetryOptions(
        max_retries=retries,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
        should_retry=is_transient_store_error,
    ))

    engine = get_engine(settings.database_url)
    repository = SQLOrderRepository(get_session_factory(engine))

    notifier = AlertNotifier(
        webhook_url=settings.alert_webhook_url,
        telegram_bot_token=settings.telegram_bot_token,
        telegram_chat_id=settings.telegram_chat_id,
    )
    monitor = SyncMonitor(notifier=notifier, metrics_file=settings.metrics_file)

    state_store = None
    if settings.redis_enabled:
        state_store = SyncStateStore(
            redis_host=settings.redis_host,
            redis_port=settings.redis_port,
            redis_db=settings.redis_db,
        )

    fetcher = PaginatedFetcher(api_client, api_executor)
    orchestrator_kwargs = {"batch_size": batch_size} if batch_size else {}
    orchestrator = SyncOrchestrator(
        fetcher=fetcher,
        repository=repository,
        db_executor=db_executor,
        monitor=monitor,
        state_store=state_store,
        **orchestrator_kwargs,
    )
    reconciler = DriftReconciler(
        fetcher=fetcher,
        repository=repository,
        orchestrator=orchestrator,
        db_executor=db_executor,
        notifier=notifier,
        state_store=state_store,
    )

    return WorkerServices(
        api_client=api_client,
        api_cache=api_cache,
        probe_cache=TTLCache(),
        api_breaker=api_breaker,
        db_breaker=db_breaker,
        repository=repository,
        orchestrator=orchestrator,
        reconciler=reconciler,
        monitor=monitor,
        notifier=notifier,
        state_store=state_store,
        engine=engine,
        webhook_secret=settings.webhook_secret,
        webhook_signature_header=settings.webhook_signature_header,
    )


async def prepare_database(services: WorkerServices) -> None:
    """Create tables if they do not exist."""
    if services.engine is not None:
        await init_db(services.engine)
        logger.info("Database tables ready")
