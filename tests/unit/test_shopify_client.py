"""
Unit Tests - Shopify Admin API Client
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from storecache.ingestion.shopify_client import ShopifyAPIError, ShopifyClient, parse_next_cursor

from conftest import TOKEN, FakeShopify, make_order, make_product, make_variant


def _products(count):
    return [make_product(i, f"Product {i}", [make_variant(i * 10)]) for i in range(1, count + 1)]


class TestParseNextCursor:
    """Tests for Link header parsing"""

    def test_next_only(self):
        header = '<https://s.myshopify.com/admin/api/2024-01/products.json?limit=250&page_info=abc123>; rel="next"'
        assert parse_next_cursor(header) == "abc123"

    def test_previous_and_next(self):
        header = (
            '<https://s.myshopify.com/admin/api/2024-01/products.json?limit=250&page_info=prev1>; rel="previous", '
            '<https://s.myshopify.com/admin/api/2024-01/products.json?limit=250&page_info=next2>; rel="next"'
        )
        assert parse_next_cursor(header) == "next2"

    def test_last_page(self):
        header = '<https://s.myshopify.com/admin/api/2024-01/products.json?limit=250&page_info=prev1>; rel="previous"'
        assert parse_next_cursor(header) is None
        assert parse_next_cursor(None) is None
        assert parse_next_cursor("") is None


class TestPagination:
    """Tests for cursor pagination"""

    async def test_follows_every_page(self, shopify_client):
        fake = FakeShopify(products=_products(5))

        async with shopify_client(fake) as client:
            result = await client.fetch_products(max_records=100)

        assert len(result.items) == 5
        assert result.pages == 3
        assert result.complete
        assert not result.capped

    async def test_filters_only_on_first_request(self, shopify_client):
        orders = [make_order(1000 + i, f"2025-01-0{i}T10:00:00Z", [(11, 1)]) for i in range(1, 6)]
        fake = FakeShopify(orders=orders)

        async with shopify_client(fake) as client:
            result = await client.fetch_orders(created_at_min=datetime(2025, 1, 2, tzinfo=timezone.utc))

        assert [o["id"] for o in result.items] == [1002, 1003, 1004, 1005]

        requests = fake.requests_to("orders.json")
        first, rest = requests[0], requests[1:]
        assert first.url.params["status"] == "any"
        assert "created_at_min" in first.url.params
        assert rest
        for request in rest:
            assert set(request.url.params.keys()) == {"limit", "page_info"}

    async def test_sends_access_token_header(self, shopify_client):
        fake = FakeShopify(products=_products(1))

        async with shopify_client(fake) as client:
            await client.fetch_products()

        request = fake.requests[0]
        assert request.headers["X-Shopify-Access-Token"] == TOKEN
        assert request.url.path == "/admin/api/2024-01/products.json"

    async def test_later_page_failure_is_partial(self, shopify_client):
        fake = FakeShopify(products=_products(5), fail_on_page=2)

        async with shopify_client(fake) as client:
            result = await client.fetch_products()

        assert len(result.items) == 2
        assert result.partial
        assert "500" in result.error

    async def test_first_page_failure_raises(self, shopify_client):
        fake = FakeShopify(products=_products(5), fail_on_page=1)

        async with shopify_client(fake) as client:
            with pytest.raises(ShopifyAPIError) as exc_info:
                await client.fetch_products()

        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "Internal Server Error"

    async def test_record_cap_truncates(self, shopify_client):
        fake = FakeShopify(products=_products(5))

        async with shopify_client(fake) as client:
            result = await client.fetch_products(max_records=3)

        assert len(result.items) == 3
        assert result.capped
        assert result.complete

    async def test_page_cap(self, shopify_client):
        fake = FakeShopify(orders=[make_order(1000 + i, "2025-01-01T10:00:00Z", [(11, 1)]) for i in range(7)])

        async with shopify_client(fake) as client:
            result = await client.fetch_orders(max_pages=2)

        assert len(result.items) == 4
        assert result.pages == 2
        assert result.capped


class TestRequests:
    """Tests for single requests and GraphQL"""

    async def test_get_shop(self, shopify_client):
        async with shopify_client(FakeShopify(shop_name="Corner Store")) as client:
            shop = await client.get_shop()
        assert shop["name"] == "Corner Store"

    async def test_bad_token_raises_with_status(self, shopify_client):
        async with shopify_client(FakeShopify(shop_status=401)) as client:
            with pytest.raises(ShopifyAPIError) as exc_info:
                await client.get_shop()

        assert exc_info.value.status_code == 401
        assert "Invalid API key" in exc_info.value.body

    async def test_fetch_unit_costs(self, shopify_client):
        fake = FakeShopify(unit_costs={"1011": "4.20"})

        async with shopify_client(fake) as client:
            costs = await client.fetch_unit_costs(["1011", "1012", None])

        assert costs == {"1011": Decimal("4.20")}
        assert len(fake.requests_to("graphql.json")) == 1

    def test_store_domain_normalized(self):
        client = ShopifyClient("https://my-store.myshopify.com/", "t", api_version="2024-01")
        assert client.base_url == "https://my-store.myshopify.com/admin/api/2024-01"

    async def test_used_outside_context(self):
        client = ShopifyClient("my-store.myshopify.com", "t")
        with pytest.raises(RuntimeError):
            await client.get_shop()
