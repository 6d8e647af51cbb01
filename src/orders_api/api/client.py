"""Upstream order API client."""

from typing import Any, Dict, Optional

import httpx

from orders_api.api.errors import UpstreamAPIError, UpstreamTimeoutError
from orders_api.config.constants import API_RESPONSE_CACHE_TTL_SECONDS, ORDER_LIST_PAGE_SIZE
from orders_api.core.cache import TTLCache, generate_cache_key
from orders_api.core.logger import setup_logger
from orders_api.models.order import OrdersPage

logger = setup_logger(__name__)


class OrderAPIClient:
    """Async HTTP client for the upstream order API."""

    def __init__(
        self,
        base_url: str,
        api_token: str,
        store_name: str,
        timeout: float = 300.0,
        cache: Optional[TTLCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize API client with credentials.

        Args:
            base_url: API root (e.g. https://api.cartpanda.com/v3)
            api_token: Bearer token
            store_name: Store slug appended to the base URL
            timeout: Per-call timeout in seconds
            cache: Optional response cache for ``use_cache`` requests
            transport: Optional httpx transport (tests)
        """
        if not api_token:
            raise ValueError("Order API token is required")
        if not store_name:
            raise ValueError("Order API store name is required")

        self.base_url = f"{base_url.rstrip('/')}/{store_name}"
        self.timeout = timeout
        self.cache = cache
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    async def _request(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        use_cache: bool = False,
        cache_ttl: float = API_RESPONSE_CACHE_TTL_SECONDS,
    ) -> dict:
        """
        Make authenticated GET request to the order API.

        Args:
            path: Endpoint path relative to the store (e.g. "/orders")
            params: Query parameters
            use_cache: Serve from / store into the response cache
            cache_ttl: TTL for a cached response

        Returns:
            Parsed JSON response

        Raises:
            UpstreamTimeoutError: call exceeded the client timeout
            UpstreamAPIError: non-2xx response
            httpx.TransportError: connection-level failure
        """
        cache_key = None
        if use_cache and self.cache is not None:
            cache_key = generate_cache_key("api", {"path": path, **(params or {})})
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"API cache HIT: {path}")
                return cached

        logger.debug(f"Order API request: {path} {params or {}}")

        try:
            response = await self.client.get(path, params=params)
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling {path}: {e}")
            raise UpstreamTimeoutError(path, self.timeout) from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling {path}: {e}")
            raise

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = (body.get("message") if isinstance(body, dict) else None) or response.reason_phrase
            logger.error(f"API error calling {path}: {response.status_code} - {message}")
            raise UpstreamAPIError(response.status_code, message, path=path)

        data = response.json()

        if cache_key is not None:
            self.cache.set(cache_key, data, cache_ttl)

        return data

    async def get_orders(
        self,
        page: int = 1,
        per_page: int = ORDER_LIST_PAGE_SIZE,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        status: Optional[str] = None,
        use_cache: bool = False,
        cache_ttl: float = API_RESPONSE_CACHE_TTL_SECONDS,
    ) -> OrdersPage:
        """
        Fetch one page of orders.

        Args:
            page: 1-based page number
            per_page: Page size
            start_date: Optional lower bound (YYYY-MM-DD)
            end_date: Optional upper bound (YYYY-MM-DD)
            status: Optional status filter

        Returns:
            OrdersPage with the raw orders and optional pagination metadata
        """
        params: Dict[str, Any] = {"page": page, "per_page": per_page}
        if start_date:
            params["start_date"] = start_date
        if end_date:
            params["end_date"] = end_date
        if status:
            params["status"] = status

        data = await self._request("/orders", params, use_cache=use_cache, cache_ttl=cache_ttl)
        return OrdersPage(**data)

    async def get_order(self, order_id: int) -> dict:
        """Fetch a single order by id."""
        data = await self._request(f"/orders/{order_id}")
        # Some deployments wrap the object, others return it bare
        return data.get("order", data)

    async def close(self) -> None:
        """Close HTTP client connection."""
        await self.client.aclose()
