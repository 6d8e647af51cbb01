"""Paginated fetch: stop conditions and deduplication."""

import pytest

from orders_api.api.errors import UpstreamAPIError
from orders_api.api.pagination import (
    STOP_DUPLICATE_PAGES,
    STOP_EMPTY_PAGE,
    STOP_PAGE_LIMIT,
    STOP_TOTAL_PAGES,
    PaginatedFetcher,
)
from tests.fakes import FakeOrderAPI, make_order


def orders(start, stop):
    return [make_order(i) for i in range(start, stop)]


@pytest.mark.asyncio
async def test_three_pages_with_reported_total(api_executor):
    api = FakeOrderAPI(
        {1: orders(1, 101), 2: orders(101, 201), 3: orders(201, 251)},
        total_pages=3,
    )
    fetcher = PaginatedFetcher(api, api_executor)

    result = await fetcher.fetch_all()

    assert len(result.orders) == 250
    assert len(set(result.ids)) == 250
    assert api.pages_requested == [1, 2, 3]
    assert result.stop_reason == STOP_TOTAL_PAGES


@pytest.mark.asyncio
async def test_short_page_does_not_end_walk(api_executor):
    api = FakeOrderAPI({
        1: orders(1, 101),
        2: orders(101, 161),
        3: orders(161, 261),
    })
    fetcher = PaginatedFetcher(api, api_executor)

    result = await fetcher.fetch_all()

    assert len(result.orders) == 260
    assert result.stop_reason == STOP_EMPTY_PAGE
    assert api.pages_requested == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_stops_after_three_duplicate_pages(api_executor):
    looping = orders(1, 101)
    api = FakeOrderAPI({page: looping for page in range(1, 50)})
    fetcher = PaginatedFetcher(api, api_executor)

    result = await fetcher.fetch_all()

    assert len(result.orders) == 100
    assert result.duplicates == 300
    assert result.stop_reason == STOP_DUPLICATE_PAGES
    assert api.pages_requested == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_partial_duplicate_page_resets_counter(api_executor):
    api = FakeOrderAPI({
        1: orders(1, 11),
        2: orders(1, 11),
        3: orders(1, 11),
        4: orders(5, 15),
        5: orders(1, 15),
        6: orders(1, 15),
        7: orders(1, 15),
    })
    fetcher = PaginatedFetcher(api, api_executor)

    result = await fetcher.fetch_all()

    assert result.ids == list(range(1, 15))
    assert result.stop_reason == STOP_DUPLICATE_PAGES
    assert api.pages_requested == [1, 2, 3, 4, 5, 6, 7]


@pytest.mark.asyncio
async def test_stops_at_total_pages_reported_by_first_page(api_executor):
    api = FakeOrderAPI({page: orders(page * 10, page * 10 + 10) for page in range(1, 10)}, total_pages=3)
    fetcher = PaginatedFetcher(api, api_executor)

    result = await fetcher.fetch_all()

    assert result.total_pages_reported == 3
    assert result.stop_reason == STOP_TOTAL_PAGES
    assert api.pages_requested == [1, 2, 3]


@pytest.mark.asyncio
async def test_stops_at_page_ceiling(api_executor):
    api = FakeOrderAPI({page: orders(page * 10, page * 10 + 10) for page in range(1, 30)})
    fetcher = PaginatedFetcher(api, api_executor)

    result = await fetcher.fetch_all(max_pages=5)

    assert result.pages_fetched == 5
    assert result.stop_reason == STOP_PAGE_LIMIT
    assert len(result.orders) == 50


@pytest.mark.asyncio
async def test_orders_without_id_are_skipped(api_executor):
    page = orders(1, 4) + [{"order_number": "#no-id"}]
    api = FakeOrderAPI({1: page})
    fetcher = PaginatedFetcher(api, api_executor)

    result = await fetcher.fetch_all()

    assert result.ids == [1, 2, 3]
    assert result.skipped_without_id == 1


@pytest.mark.asyncio
async def test_pages_without_ids_are_not_duplicate_pages(api_executor):
    no_ids = [{"order_number": f"#no-id-{i}"} for i in range(5)]
    api = FakeOrderAPI({1: no_ids, 2: no_ids, 3: no_ids, 4: no_ids, 5: orders(1, 4)})
    fetcher = PaginatedFetcher(api, api_executor)

    result = await fetcher.fetch_all()

    assert result.ids == [1, 2, 3]
    assert result.skipped_without_id == 20
    assert result.duplicates == 0
    assert result.stop_reason == STOP_EMPTY_PAGE
    assert api.pages_requested == [1, 2, 3, 4, 5, 6]


@pytest.mark.asyncio
async def test_filters_and_cache_flag_are_forwarded(api_executor):
    api = FakeOrderAPI({1: orders(1, 3)})
    fetcher = PaginatedFetcher(api, api_executor, page_size=50)

    await fetcher.fetch_all(start_date="2024-01-01", end_date="2024-01-02", use_cache=True)

    first_call = api.calls[0]
    assert first_call["per_page"] == 50
    assert first_call["start_date"] == "2024-01-01"
    assert first_call["end_date"] == "2024-01-02"
    assert first_call["use_cache"] is True


@pytest.mark.asyncio
async def test_transient_page_failure_is_retried(api_executor, sleeper):
    api = FakeOrderAPI({1: orders(1, 5)}, failures={1: [UpstreamAPIError(503, "unavailable")]})
    fetcher = PaginatedFetcher(api, api_executor)
    retries = []

    result = await fetcher.fetch_all(on_retry=lambda attempt, error, delay: retries.append(attempt))

    assert len(result.orders) == 4
    assert retries == [1]
    assert api.pages_requested == [1, 1, 2]
    assert len(sleeper.delays) == 1


@pytest.mark.asyncio
async def test_permanent_page_failure_propagates(api_executor):
    api = FakeOrderAPI({1: orders(1, 5)}, failures={2: [UpstreamAPIError(401, "Unauthorized")]})
    fetcher = PaginatedFetcher(api, api_executor)

    with pytest.raises(UpstreamAPIError):
        await fetcher.fetch_all()
