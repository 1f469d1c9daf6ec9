"""
API Schemas

Request and response contracts. Field names are snake_case in Python and
camelCase on the wire.

The action-dispatch body is a closed union tagged by ``action``; each
variant declares the fields it needs, so a missing credential or barcode is
a 422 before any handler runs.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for camelCase JSON models."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# ACTION REQUESTS
# =============================================================================

class RemoteAction(CamelModel):
    """Actions that call the Shopify Admin API need credentials."""
    store_name: str = Field(..., min_length=1, description="e.g. my-store.myshopify.com")
    access_token: str = Field(..., min_length=1)


class LocalAction(CamelModel):
    """Actions answered from the cache; credentials are optional."""
    store_name: Optional[str] = None
    access_token: Optional[str] = None


class TestConnectionAction(RemoteAction):
    action: Literal["test"]


class RefreshProductsAction(RemoteAction):
    action: Literal["refreshProducts"]
    include_sales: bool = True


class SyncOrdersAction(RemoteAction):
    action: Literal["syncOrders"]
    since: Optional[datetime] = None
    fetch_all: bool = False


class GetAnalyticsAction(LocalAction):
    action: Literal["getAnalytics"]


class GetProductAction(LocalAction):
    """With credentials, an empty or stale catalog is refreshed."""
    action: Literal["getProduct"]
    upc: str = Field(..., min_length=1)


class GetCorrelationsAction(LocalAction):
    action: Literal["getCorrelations"]
    variant_id: Optional[str] = None
    limit: int = Field(default=20, ge=1, le=100)


class GetSyncStatusAction(LocalAction):
    action: Literal["getSyncStatus"]


ShopifyAction = Annotated[
    Union[
        TestConnectionAction,
        RefreshProductsAction,
        SyncOrdersAction,
        GetAnalyticsAction,
        GetProductAction,
        GetCorrelationsAction,
        GetSyncStatusAction,
    ],
    Field(discriminator="action"),
]


class ShopifyRequest(RootModel[ShopifyAction]):
    """Body of POST /api/shopify."""
    pass


class OrderSyncRequest(RemoteAction):
    """Body of POST /api/orders/sync."""
    since: Optional[datetime] = None
    fetch_all: bool = False


# =============================================================================
# RESPONSES
# =============================================================================

class ServiceStatus(CamelModel):
    status: str = "Backend is alive!"
    cached_products: int
    cache_age: Optional[int] = Field(None, description="Seconds since the last catalog refresh")


class ConnectResponse(CamelModel):
    success: bool = True
    shop_name: Optional[str] = None
    store: str
    refresh_scheduled: bool


class SalesCounters(CamelModel):
    units_1d: int = 0
    units_7d: int = 0
    units_30d: int = 0
    units_90d: int = 0
    units_365d: int = 0
    units_all_time: int = 0


class CorrelatedProduct(CamelModel):
    variant_id: str
    name: Optional[str] = None
    barcode: Optional[str] = None
    price: Optional[float] = None
    co_purchase_count: int
    correlation_score: float


class CorrelationPair(CamelModel):
    variant_a: str
    variant_b: str
    name_a: Optional[str] = None
    name_b: Optional[str] = None
    co_purchase_count: int
    correlation_score: float


class VariantSummary(CamelModel):
    variant_id: str
    product_id: str
    name: str
    product_title: str
    variant_title: Optional[str] = None
    barcode: Optional[str] = None
    sku: Optional[str] = None
    vendor: Optional[str] = None
    price: Optional[float] = None
    compare_at_price: Optional[float] = None
    cost: Optional[float] = None
    cost_is_estimated: bool = True
    inventory_quantity: int = 0
    sales: SalesCounters
    monthly_sales: int = 0
    daily_velocity: float = 0.0
    days_of_stock: float
    risk_level: str


class ProductDetail(VariantSummary):
    correlated: List[CorrelatedProduct] = Field(default_factory=list)


class ProductForecast(VariantSummary):
    projected_demand_30d: int
    reorder_quantity: int


class ProductResponse(CamelModel):
    success: bool = True
    product: ProductDetail


class ProductListResponse(CamelModel):
    success: bool = True
    count: int
    products: List[ProductForecast]


class CorrelationsResponse(CamelModel):
    success: bool = True
    variant_id: Optional[str] = None
    correlations: List[Union[CorrelatedProduct, CorrelationPair]]


class SalesSyncSummary(CamelModel):
    orders_fetched: int
    variants_updated: int
    complete: bool
    error: Optional[str] = None


class ProductSyncResponse(CamelModel):
    success: bool = True
    inserted: int
    skipped: int
    variants_seen: int
    complete: bool
    capped: bool
    error: Optional[str] = None
    sales: Optional[SalesSyncSummary] = None


class OrderAnalytics(CamelModel):
    total_orders: int = 0
    customers: int = 0
    returning_customers: int = 0
    correlations: int = 0
    sales_aggregates: int = 0


class OrderSyncResponse(CamelModel):
    success: bool = True
    outcome: Literal["full", "partial"]
    orders_processed: int
    items_processed: int
    orders_failed: int
    window_start: Optional[datetime] = None
    error: Optional[str] = None
    analytics: OrderAnalytics = Field(default_factory=OrderAnalytics)


class SyncStatusResponse(CamelModel):
    state: str
    is_processing: bool
    started_at: Optional[datetime] = None
    last_completed_at: Optional[datetime] = None
    last_result: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None
    jobs: List[Dict[str, Any]] = Field(default_factory=list)


class CatalogStats(CamelModel):
    variants: int
    products: int
    variants_with_barcode: int
    orders: int
    order_items: int
    correlations: int
    customers: int
    returning_customers: int
    last_product_sync: Optional[str] = None
    last_order_sync: Optional[str] = None
    latest_order_at: Optional[str] = None


class PeriodTotals(CamelModel):
    start: datetime
    orders: int
    revenue: float
    average_order_value: float


class SalesRollup(CamelModel):
    timezone: str
    generated_at: datetime
    periods: Dict[str, PeriodTotals]


class AnalyticsResponse(CamelModel):
    success: bool = True
    sales: SalesRollup
    stats: CatalogStats
    at_risk: List[ProductForecast]
    top_correlations: List[CorrelationPair]
