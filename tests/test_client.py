"""Order API client tests over an httpx MockTransport."""

import httpx
import pytest

from orders_api.api.client import OrderAPIClient
from orders_api.api.errors import UpstreamAPIError, UpstreamTimeoutError
from orders_api.core.cache import TTLCache


def make_client(handler, cache=None):
    return OrderAPIClient(
        base_url="https://api.example.com/v3/",
        api_token="test-token",
        store_name="demo-store",
        cache=cache,
        transport=httpx.MockTransport(handler),
    )


def test_requires_credentials():
    with pytest.raises(ValueError):
        OrderAPIClient(base_url="https://api.example.com", api_token="", store_name="demo")
    with pytest.raises(ValueError):
        OrderAPIClient(base_url="https://api.example.com", api_token="token", store_name="")


@pytest.mark.asyncio
async def test_get_orders_sends_auth_and_filters():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={
            "orders": [{"id": 1}, {"id": 2}],
            "meta": {"current_page": 2, "total_pages": 7},
        })

    client = make_client(handler)
    page = await client.get_orders(page=2, per_page=50, start_date="2024-01-01")
    await client.close()

    assert seen["auth"] == "Bearer test-token"
    assert seen["url"].path == "/v3/demo-store/orders"
    assert seen["url"].params["page"] == "2"
    assert seen["url"].params["per_page"] == "50"
    assert seen["url"].params["start_date"] == "2024-01-01"
    assert "end_date" not in seen["url"].params
    assert [order["id"] for order in page.orders] == [1, 2]
    assert page.meta.total_pages == 7


@pytest.mark.asyncio
async def test_error_status_raises_upstream_error():
    def handler(request):
        return httpx.Response(404, json={"message": "Store not found"})

    client = make_client(handler)
    with pytest.raises(UpstreamAPIError) as exc_info:
        await client.get_orders()
    await client.close()

    assert exc_info.value.status_code == 404
    assert "Store not found" in str(exc_info.value)


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"[\"gateway\", \"down\"]", b"\"down\"", b"<html>down</html>"])
async def test_error_body_that_is_not_an_object_uses_reason_phrase(body):
    def handler(request):
        return httpx.Response(502, content=body, headers={"Content-Type": "application/json"})

    client = make_client(handler)
    with pytest.raises(UpstreamAPIError) as exc_info:
        await client.get_orders()
    await client.close()

    assert exc_info.value.status_code == 502
    assert "Bad Gateway" in str(exc_info.value)


@pytest.mark.asyncio
async def test_timeout_raises_upstream_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler)
    with pytest.raises(UpstreamTimeoutError):
        await client.get_orders()
    await client.close()


@pytest.mark.asyncio
async def test_cached_requests_hit_upstream_once():
    calls = []

    def handler(request):
        calls.append(request.url)
        return httpx.Response(200, json={"orders": [{"id": 9}]})

    client = make_client(handler, cache=TTLCache(default_ttl=60))
    await client.get_orders(page=1, use_cache=True)
    await client.get_orders(page=1, use_cache=True)
    await client.get_orders(page=1)
    await client.close()

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_get_order_unwraps_order_key():
    def handler(request):
        if request.url.path.endswith("/orders/5"):
            return httpx.Response(200, json={"order": {"id": 5, "status_id": "3"}})
        return httpx.Response(200, json={"id": 6})

    client = make_client(handler)
    assert (await client.get_order(5))["id"] == 5
    assert (await client.get_order(6))["id"] == 6
    await client.close()
