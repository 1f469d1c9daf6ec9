"""
Test Suite Configuration

In-memory SQLite stands in for PostgreSQL and an httpx MockTransport stands
in for the Shopify Admin API.
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storecache.config import Settings
from storecache.config.settings import RedisSettings, ShopifySettings, SyncSettings
from storecache.database.connection import session_scope_for
from storecache.database.models import Base
from storecache.ingestion.order_sync import OrderSyncEngine
from storecache.ingestion.product_sync import ProductSyncEngine
from storecache.ingestion.shopify_client import ShopifyClient
from storecache.ingestion.sync_status import SyncTracker
from storecache.transformation.normalizers import as_utc

STORE = "test-store.myshopify.com"
TOKEN = "shpat_test_token"


# =============================================================================
# FAKE SHOPIFY ADMIN API
# =============================================================================

class FakeShopify:
    """
    Serves /shop.json, /products.json, /orders.json and /graphql.json with
    Link-header cursor pagination.
    """

    def __init__(
        self,
        products: Optional[List[Dict[str, Any]]] = None,
        orders: Optional[List[Dict[str, Any]]] = None,
        shop_name: str = "Test Store",
        shop_status: int = 200,
        fail_on_page: Optional[int] = None,
        unit_costs: Optional[Dict[str, str]] = None,
    ):
        self.products = products or []
        self.orders = orders or []
        self.shop_name = shop_name
        self.shop_status = shop_status
        self.fail_on_page = fail_on_page
        self.unit_costs = unit_costs or {}
        self.requests: List[httpx.Request] = []
        self._cursors: Dict[str, tuple] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, resource: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(resource)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        resource = request.url.path.rsplit("/", 1)[-1]

        if resource == "shop.json":
            if self.shop_status != 200:
                return httpx.Response(self.shop_status, json={"errors": "[API] Invalid API key or access token"})
            return httpx.Response(200, json={"shop": {"name": self.shop_name, "domain": request.url.host}})
        if resource == "products.json":
            return self._page(request, "products", self.products)
        if resource == "orders.json":
            return self._page(request, "orders", self._filter_orders(request))
        if resource == "graphql.json":
            return self._graphql(request)
        return httpx.Response(404, json={"errors": "Not Found"})

    def _filter_orders(self, request: httpx.Request) -> List[Dict[str, Any]]:
        created_at_min = request.url.params.get("created_at_min")
        if not created_at_min:
            return self.orders
        floor = as_utc(created_at_min)
        return [o for o in self.orders if as_utc(o["created_at"]) >= floor]

    def _page(self, request: httpx.Request, key: str, records: List[Dict[str, Any]]) -> httpx.Response:
        params = request.url.params
        limit = int(params.get("limit", 250))
        cursor = params.get("page_info")

        if cursor:
            records, offset, page = self._cursors[cursor]
        else:
            offset, page = 0, 1

        if self.fail_on_page == page:
            return httpx.Response(500, text="Internal Server Error")

        headers = {}
        if offset + limit < len(records):
            token = f"cursor{len(self._cursors) + 1}"
            self._cursors[token] = (records, offset + limit, page + 1)
            headers["link"] = (
                f"<https://{request.url.host}{request.url.path}?limit={limit}&page_info={token}>; "
                f'rel="next"'
            )
        return httpx.Response(200, json={key: records[offset:offset + limit]}, headers=headers)

    def _graphql(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        nodes = []
        for gid in payload["variables"]["ids"]:
            item_id = gid.rsplit("/", 1)[-1]
            if item_id in self.unit_costs:
                nodes.append({"id": gid, "unitCost": {"amount": self.unit_costs[item_id]}})
            else:
                nodes.append({"id": gid, "unitCost": None})
        return httpx.Response(200, json={"data": {"nodes": nodes}})


# =============================================================================
# PAYLOAD BUILDERS
# =============================================================================

def make_variant(
    variant_id: int,
    barcode: Optional[str] = None,
    price: str = "10.00",
    title: str = "Default Title",
    compare_at_price: Optional[str] = None,
    inventory_quantity: int = 5,
    sku: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": variant_id,
        "title": title,
        "barcode": barcode,
        "sku": sku or f"SKU-{variant_id}",
        "price": price,
        "compare_at_price": compare_at_price,
        "inventory_quantity": inventory_quantity,
        "inventory_item_id": variant_id + 1000,
        "created_at": "2024-06-01T10:00:00-04:00",
        "updated_at": "2024-06-02T10:00:00-04:00",
    }


def make_product(product_id: int, title: str, variants: List[Dict[str, Any]], vendor: str = "Acme") -> Dict[str, Any]:
    return {
        "id": product_id,
        "title": title,
        "vendor": vendor,
        "tags": "",
        "variants": variants,
        "created_at": "2024-06-01T10:00:00-04:00",
        "updated_at": "2024-06-02T10:00:00-04:00",
    }


def make_order(
    order_id: int,
    created_at: str,
    items: List[tuple],
    customer_id: Optional[int] = None,
    email: Optional[str] = None,
    total_price: str = "20.00",
) -> Dict[str, Any]:
    """``items`` are (variant_id, quantity) pairs; a None variant is a custom sale."""
    return {
        "id": order_id,
        "order_number": order_id - 1000,
        "email": email,
        "customer": {"id": customer_id} if customer_id else None,
        "created_at": created_at,
        "total_price": total_price,
        "subtotal_price": total_price,
        "total_tax": "0.00",
        "currency": "USD",
        "line_items": [
            {
                "variant_id": variant_id,
                "product_id": None if variant_id is None else variant_id // 10,
                "title": "Item" if variant_id else "Custom sale",
                "variant_title": None,
                "quantity": quantity,
                "price": "10.00",
            }
            for variant_id, quantity in items
        ],
    }


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
        redis=RedisSettings(enabled=False),
        shopify=ShopifySettings(page_delay_seconds=0, page_size=2),
        sync=SyncSettings(schedule_enabled=False),
    )


@pytest.fixture
async def test_engine():
    """In-memory SQLite with foreign keys enforced"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_scope(test_engine):
    """Commit-or-rollback scope bound to the test engine"""
    factory = async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)
    return session_scope_for(factory)


@pytest.fixture
async def test_db(session_scope):
    """Create test database session"""
    async with session_scope() as session:
        yield session


@pytest.fixture
def tracker() -> SyncTracker:
    return SyncTracker()


@pytest.fixture
def product_engine(test_settings, session_scope) -> ProductSyncEngine:
    return ProductSyncEngine(settings=test_settings, session_scope=session_scope)


@pytest.fixture
def order_engine(test_settings, tracker, session_scope) -> OrderSyncEngine:
    return OrderSyncEngine(settings=test_settings, tracker=tracker, session_scope=session_scope)


@pytest.fixture
def shopify_client():
    """Factory for a client wired to a FakeShopify."""

    def factory(fake: FakeShopify, page_size: int = 2) -> ShopifyClient:
        return ShopifyClient(
            STORE,
            TOKEN,
            api_version="2024-01",
            page_size=page_size,
            page_delay_seconds=0,
            timeout=5,
            transport=fake.transport,
        )

    return factory


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 3, 12, 15, 30, tzinfo=timezone.utc)
