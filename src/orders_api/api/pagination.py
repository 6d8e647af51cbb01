"""Paginated fetch over the upstream order list.

Walks pages strictly in order, deduplicating by order id, and stops on the
first of four normal conditions:

1. a page returns zero orders
2. ``max_duplicate_pages`` consecutive pages contain only already-seen orders
3. the total page count reported by page 1 is reached
4. the page ceiling is reached

A short page is not treated as the end; the upstream has been observed to
return short pages mid-walk and to loop past its last page.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from orders_api.config.constants import (
    FULL_SYNC_MAX_PAGES,
    MAX_CONSECUTIVE_DUPLICATE_PAGES,
    ORDER_LIST_PAGE_SIZE,
)
from orders_api.core.logger import setup_logger
from orders_api.integrations.retry import RetryExecutor

logger = setup_logger(__name__)

STOP_EMPTY_PAGE = "empty_page"
STOP_DUPLICATE_PAGES = "duplicate_pages"
STOP_TOTAL_PAGES = "total_pages_reached"
STOP_PAGE_LIMIT = "page_limit"


@dataclass
class FetchResult:
    """Deduplicated orders plus how the walk ended."""
    orders: List[Dict[str, Any]] = field(default_factory=list)
    pages_fetched: int = 0
    duplicates: int = 0
    skipped_without_id: int = 0
    total_pages_reported: Optional[int] = None
    stop_reason: Optional[str] = None

    @property
    def ids(self) -> List[int]:
        return [order["id"] for order in self.orders]


class PaginatedFetcher:
    """Fetches every order in a window, page by page, through the executor."""

    def __init__(
        self,
        api_client,
        executor: Optional[RetryExecutor] = None,
        page_size: int = ORDER_LIST_PAGE_SIZE,
        max_duplicate_pages: int = MAX_CONSECUTIVE_DUPLICATE_PAGES,
    ):
        """
        Args:
            api_client: Object exposing ``get_orders(page=..., per_page=..., ...)``
            executor: Retry/breaker wrapper for each page request
            page_size: Orders requested per page
            max_duplicate_pages: Consecutive all-duplicate pages that end the walk
        """
        self.api_client = api_client
        self.executor = executor
        self.page_size = page_size
        self.max_duplicate_pages = max_duplicate_pages

    async def _fetch_page(self, page: int, use_cache: bool, filters: Dict[str, Any], on_retry=None):
        async def request():
            return await self.api_client.get_orders(
                page=page,
                per_page=self.page_size,
                use_cache=use_cache,
                **filters,
            )

        if self.executor is None:
            return await request()
        return await self.executor.call(request, on_retry=on_retry)

    async def fetch_all(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        status: Optional[str] = None,
        max_pages: Optional[int] = None,
        use_cache: bool = False,
        on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    ) -> FetchResult:
        """
        Fetch the deduplicated set of orders.

        Args:
            start_date: Optional window start (YYYY-MM-DD)
            end_date: Optional window end (YYYY-MM-DD)
            status: Optional upstream status filter
            max_pages: Page ceiling (defaults to FULL_SYNC_MAX_PAGES)
            use_cache: Reuse cached page responses
            on_retry: Hook called before each page retry

        Returns:
            FetchResult with unique orders in first-seen order
        """
        max_pages = max_pages or FULL_SYNC_MAX_PAGES
        filters = {"start_date": start_date, "end_date": end_date, "status": status}

        result = FetchResult()
        seen_ids = set()
        consecutive_duplicate_pages = 0
        page = 1

        logger.debug(f"Fetching orders (limit: {max_pages} pages, {filters})")

        while True:
            response = await self._fetch_page(page, use_cache, filters, on_retry)
            result.pages_fetched += 1
            orders_in_page = len(response.orders)

            # Only page 1's metadata is trusted, and never on its own
            if page == 1 and response.meta is not None and response.meta.total_pages:
                result.total_pages_reported = response.meta.total_pages
                logger.debug(f"Total pages reported by API: {result.total_pages_reported}")

            new_in_page = 0
            duplicates_in_page = 0
            for order in response.orders:
                order_id = order.get("id")
                if order_id is None:
                    result.skipped_without_id += 1
                    logger.warning(f"Skipping order without id on page {page}")
                    continue
                if order_id in seen_ids:
                    result.duplicates += 1
                    duplicates_in_page += 1
                    continue
                seen_ids.add(order_id)
                result.orders.append(order)
                new_in_page += 1

            logger.debug(
                f"Page {page}: {orders_in_page} orders ({new_in_page} new, "
                f"{duplicates_in_page} duplicates) - Total unique: {len(result.orders)}"
            )

            if orders_in_page > 0 and duplicates_in_page == orders_in_page:
                consecutive_duplicate_pages += 1
            else:
                consecutive_duplicate_pages = 0

            if orders_in_page == 0:
                result.stop_reason = STOP_EMPTY_PAGE
                logger.debug("Stopping: no orders returned")
                break
            if consecutive_duplicate_pages >= self.max_duplicate_pages:
                result.stop_reason = STOP_DUPLICATE_PAGES
                logger.warning(
                    f"Stopping: {self.max_duplicate_pages} consecutive pages with only duplicates"
                )
                break
            if result.total_pages_reported and page >= result.total_pages_reported:
                result.stop_reason = STOP_TOTAL_PAGES
                logger.debug(f"Stopping: reached total pages ({result.total_pages_reported})")
                break
            if page >= max_pages:
                result.stop_reason = STOP_PAGE_LIMIT
                logger.warning(f"Stopping: reached safety limit ({max_pages} pages)")
                break

            page += 1

        logger.info(
            f"Pagination complete: {len(result.orders)} unique orders in "
            f"{result.pages_fetched} pages ({result.stop_reason})"
        )
        return result
