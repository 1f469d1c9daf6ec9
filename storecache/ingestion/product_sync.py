"""
Product Sync Engine

Full catalog refresh into ``product_variants`` and wholesale recomputation of
``sales_aggregates``.

Usage:
    engine = ProductSyncEngine()
    async with ShopifyClient(store, token) as client:
        result = await engine.sync_products(client)
        sales = await engine.sync_sales(client)
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from storecache.config import Settings, get_settings
from storecache.database.connection import SessionScope, get_db
from storecache.database.models import ProductVariant, SalesAggregate
from storecache.database.upsert import upsert
from storecache.ingestion.shopify_client import ShopifyAPIError, ShopifyClient
from storecache.serving.cache import analytics_cache, products_cache
from storecache.transformation.aggregations import compute_sales_windows, order_lines
from storecache.transformation.normalizers import normalize_products

logger = structlog.get_logger(__name__)


@dataclass
class ProductSyncResult:
    inserted: int = 0
    skipped: int = 0
    variants_seen: int = 0
    complete: bool = True
    capped: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SalesSyncResult:
    orders_fetched: int = 0
    variants_updated: int = 0
    complete: bool = True
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def replace_sales_aggregates(
    db: AsyncSession,
    windows: List[Dict[str, Any]],
    computed_at: Optional[datetime] = None,
) -> int:
    """
    Replace every sales_aggregates row with freshly computed windows.

    Variants missing from the catalog are dropped (the table references
    product_variants).
    """
    computed_at = computed_at or datetime.now(timezone.utc)
    known = set((await db.execute(select(ProductVariant.variant_id))).scalars().all())

    rows = [
        {**window, "computed_at": computed_at}
        for window in windows
        if window["variant_id"] in known
    ]

    await db.execute(delete(SalesAggregate))
    if rows:
        await db.execute(insert(SalesAggregate), rows)

    dropped = len(windows) - len(rows)
    if dropped:
        logger.debug("Sales for uncatalogued variants dropped", count=dropped)
    return len(rows)


class ProductSyncEngine:
    """
    Catalog refresh.

    Products whose title has no lower-case letter are skipped; every variant
    of an accepted product is upserted on ``variant_id``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_scope: Optional[SessionScope] = None,
    ):
        self.settings = settings or get_settings()
        self.session_scope = session_scope or get_db

    async def sync_products(self, client: ShopifyClient) -> ProductSyncResult:
        """
        Refresh product_variants from the remote catalog.

        Raises:
            ShopifyAPIError: If the first catalog page cannot be fetched
        """
        logger.info("Product sync started", store=client.store_domain)

        fetched = await client.fetch_products(self.settings.shopify.max_product_records)

        unit_costs = {}
        if self.settings.shopify.fetch_unit_costs:
            item_ids = [
                variant.get("inventory_item_id")
                for product in fetched.items
                for variant in product.get("variants") or []
            ]
            try:
                unit_costs = await client.fetch_unit_costs(item_ids)
            except ShopifyAPIError as e:
                logger.warning("Unit cost lookup failed, estimating costs", error=str(e))

        rows, skipped = normalize_products(fetched.items, self.settings.sync.cost_ratio, unit_costs)

        # A variant listed twice across pages is written once
        rows = list({row["variant_id"]: row for row in rows}.values())

        async with self.session_scope() as db:
            if self.settings.sync.clear_products_before_refresh:
                await db.execute(delete(ProductVariant))
                logger.info("Product table cleared before refresh")
            inserted = await upsert(db, ProductVariant, rows, ["variant_id"])

        await products_cache.invalidate_all()
        await analytics_cache.invalidate_all()

        result = ProductSyncResult(
            inserted=inserted,
            skipped=skipped,
            variants_seen=len(rows),
            complete=fetched.complete,
            capped=fetched.capped,
            error=fetched.error,
        )
        logger.info("Product sync finished", store=client.store_domain, **result.to_dict())
        return result

    async def sync_sales(self, client: ShopifyClient, now: Optional[datetime] = None) -> SalesSyncResult:
        """Recompute sales_aggregates from orders in the lookback window."""
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=self.settings.sync.sales_lookback_days)

        fetched = await client.fetch_orders(
            created_at_min=since,
            max_pages=self.settings.shopify.max_order_pages,
        )
        windows = compute_sales_windows(order_lines(fetched.items), now=now)

        async with self.session_scope() as db:
            updated = await replace_sales_aggregates(db, windows, computed_at=now)

        await products_cache.invalidate_all()

        result = SalesSyncResult(
            orders_fetched=len(fetched.items),
            variants_updated=updated,
            complete=fetched.complete,
            error=fetched.error,
        )
        logger.info("Sales sync finished", store=client.store_domain, **result.to_dict())
        return result
