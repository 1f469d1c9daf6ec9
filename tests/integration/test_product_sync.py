"""
Integration Tests - Product Sync Engine
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select

from storecache.database.models import ProductVariant, SalesAggregate
from storecache.ingestion.product_sync import ProductSyncEngine

from conftest import FakeShopify, make_order, make_product, make_variant


def _catalog():
    return [
        make_product(1, "ALL CAPS THING", [make_variant(11, barcode="100")]),
        make_product(2, "Mixed Case Thing", [
            make_variant(21, barcode="200", title="Small"),
            make_variant(22, barcode="201", title="Large", compare_at_price="15.00"),
        ]),
        make_product(3, "Coffee beans", [make_variant(31, barcode="300", price="20.00")]),
    ]


async def _count(session_scope, model) -> int:
    async with session_scope() as db:
        return (await db.execute(select(func.count()).select_from(model))).scalar()


class TestSyncProducts:
    """Tests for ProductSyncEngine.sync_products"""

    async def test_filters_titles_and_upserts_variants(self, product_engine, shopify_client, session_scope):
        fake = FakeShopify(products=_catalog())

        async with shopify_client(fake) as client:
            result = await product_engine.sync_products(client)

        assert result.skipped == 1
        assert result.inserted == 3
        assert result.complete

        async with session_scope() as db:
            variants = {v.variant_id: v for v in (await db.execute(select(ProductVariant))).scalars()}

        assert set(variants) == {"21", "22", "31"}
        assert variants["21"].variant_title == "Small"
        assert variants["22"].cost == Decimal("15.00")
        assert variants["31"].cost == Decimal("12.00")
        assert variants["31"].cost_is_estimated

    async def test_resync_is_idempotent(self, product_engine, shopify_client, session_scope):
        fake = FakeShopify(products=_catalog())

        async with shopify_client(fake) as client:
            await product_engine.sync_products(client)
        first = await _count(session_scope, ProductVariant)

        async with shopify_client(fake) as client:
            await product_engine.sync_products(client)
        second = await _count(session_scope, ProductVariant)

        assert first == second == 3

    async def test_resync_overwrites_mutable_fields(self, product_engine, shopify_client, session_scope):
        catalog = _catalog()
        async with shopify_client(FakeShopify(products=catalog)) as client:
            await product_engine.sync_products(client)

        catalog[2]["variants"][0]["price"] = "25.00"
        catalog[2]["variants"][0]["inventory_quantity"] = 1
        async with shopify_client(FakeShopify(products=catalog)) as client:
            await product_engine.sync_products(client)

        async with session_scope() as db:
            variant = await db.get(ProductVariant, "31")
        assert variant.price == Decimal("25.00")
        assert variant.inventory_quantity == 1

    async def test_unit_costs_when_enabled(self, test_settings, session_scope, shopify_client):
        test_settings.shopify.fetch_unit_costs = True
        engine = ProductSyncEngine(settings=test_settings, session_scope=session_scope)
        fake = FakeShopify(products=_catalog(), unit_costs={"1031": "9.40"})

        async with shopify_client(fake) as client:
            await engine.sync_products(client)

        async with session_scope() as db:
            variant = await db.get(ProductVariant, "31")
        assert variant.cost == Decimal("9.40")
        assert not variant.cost_is_estimated

    async def test_partial_catalog_is_reported(self, product_engine, shopify_client):
        fake = FakeShopify(products=_catalog(), fail_on_page=2)

        async with shopify_client(fake) as client:
            result = await product_engine.sync_products(client)

        assert not result.complete
        assert result.error
        assert result.inserted == 2


class TestSyncSales:
    """Tests for ProductSyncEngine.sync_sales"""

    async def test_recomputes_aggregates(self, product_engine, shopify_client, session_scope):
        now = datetime.now(timezone.utc)
        orders = [
            make_order(1001, (now - timedelta(hours=2)).isoformat(), [(21, 2), (31, 1)]),
            make_order(1002, (now - timedelta(days=10)).isoformat(), [(21, 1), (99, 5)]),
        ]
        fake = FakeShopify(products=_catalog(), orders=orders)

        async with shopify_client(fake) as client:
            await product_engine.sync_products(client)
            result = await product_engine.sync_sales(client, now=now)
            # Recomputed wholesale, never incremented
            await product_engine.sync_sales(client, now=now)

        # Variant 99 is not in the catalog
        assert result.variants_updated == 2

        async with session_scope() as db:
            sales = await db.get(SalesAggregate, "21")
        assert sales.units_1d == 2
        assert sales.units_30d == 3
        assert sales.units_all_time == 3
        assert await _count(session_scope, SalesAggregate) == 2
