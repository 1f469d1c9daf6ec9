"""
Order Sync Engine

Incremental order synchronization:
- Window starts an hour before the newest stored order
- Each order and its line items are upserted in their own transaction
- Returning-customer flags, customer statistics, co-purchase correlations and
  sales aggregates are recomputed wholesale once per run
- One run at a time; a second request fails fast with SyncInProgressError
"""

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import Float, and_, case, cast, delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from storecache.config import Settings, get_settings
from storecache.database.connection import SessionScope, get_db
from storecache.database.models import CustomerStats, Order, OrderItem, ProductCorrelation
from storecache.database.upsert import upsert
from storecache.ingestion.product_sync import replace_sales_aggregates
from storecache.ingestion.shopify_client import ShopifyClient
from storecache.ingestion.sync_status import SyncInProgressError, SyncTracker, get_sync_tracker
from storecache.serving.cache import analytics_cache, products_cache
from storecache.transformation.aggregations import compute_sales_windows
from storecache.transformation.normalizers import (
    as_utc,
    customer_id_of,
    normalize_line_items,
    normalize_order,
)

logger = structlog.get_logger(__name__)


class SyncOutcome(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


@dataclass
class OrderSyncResult:
    orders_processed: int = 0
    items_processed: int = 0
    orders_failed: int = 0
    outcome: SyncOutcome = SyncOutcome.FULL
    window_start: Optional[datetime] = None
    error: Optional[str] = None
    analytics: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        data["window_start"] = self.window_start.isoformat() if self.window_start else None
        return data


def resolve_sync_window(
    latest_order_at: Optional[datetime],
    since: Optional[datetime] = None,
    fetch_all: bool = False,
    now: Optional[datetime] = None,
    buffer_minutes: int = 60,
    default_days: int = 365,
) -> Optional[datetime]:
    """
    Lower bound for the order fetch; None means the entire history.

    Explicit ``since`` wins, then ``fetch_all``. Otherwise the window opens
    ``buffer_minutes`` before the newest stored order so late edits near the
    boundary are picked up, or ``default_days`` back on an empty store.
    """
    if since is not None:
        return as_utc(since)
    if fetch_all:
        return None
    if latest_order_at is not None:
        return as_utc(latest_order_at) - timedelta(minutes=buffer_minutes)
    now = as_utc(now) if now else datetime.now(timezone.utc)
    return now - timedelta(days=default_days)


async def latest_order_timestamp(db: AsyncSession) -> Optional[datetime]:
    latest = (await db.execute(select(func.max(Order.created_at)))).scalar()
    return as_utc(latest)


# =============================================================================
# POST-PROCESSING
# =============================================================================

async def refresh_returning_flags(db: AsyncSession) -> int:
    """
    Flag every order of a customer with more than one order; clear the rest.

    Returns:
        Number of returning customers
    """
    repeat_customers = (
        select(Order.customer_id)
        .where(Order.customer_id.isnot(None))
        .group_by(Order.customer_id)
        .having(func.count(Order.order_id) > 1)
    )

    await db.execute(
        update(Order)
        .values(
            is_returning_customer=case(
                (Order.customer_id.in_(repeat_customers), True),
                else_=False,
            )
        )
        .execution_options(synchronize_session=False)
    )

    return (await db.execute(
        select(func.count()).select_from(repeat_customers.subquery())
    )).scalar() or 0


async def refresh_customer_stats(db: AsyncSession) -> int:
    """Rebuild customer_stats from the orders table."""
    await db.execute(delete(CustomerStats))

    stats = (
        select(
            Order.customer_id,
            func.count(Order.order_id),
            func.coalesce(func.sum(Order.total_price), 0),
            func.coalesce(func.avg(Order.total_price), 0),
            func.min(Order.created_at),
            func.max(Order.created_at),
        )
        .where(Order.customer_id.isnot(None))
        .group_by(Order.customer_id)
    )
    await db.execute(
        insert(CustomerStats).from_select(
            [
                "customer_id",
                "order_count",
                "total_spent",
                "avg_order_value",
                "first_order_at",
                "last_order_at",
            ],
            stats,
        )
    )

    return (await db.execute(select(func.count()).select_from(CustomerStats))).scalar() or 0


async def refresh_correlations(db: AsyncSession, min_co_purchase_count: int = 2) -> int:
    """
    Rebuild product_correlations from order_items.

    Pairs come from a self-join on order id with ``a.variant_id < b.variant_id``,
    which yields each unordered pair once and never pairs a variant with
    itself. The score is the Jaccard index of the two variants' order sets:
    co-purchases / (orders(A) + orders(B) - co-purchases).
    """
    a = aliased(OrderItem)
    b = aliased(OrderItem)
    co_count = func.count(func.distinct(a.order_id))

    pairs = (
        select(
            a.variant_id.label("variant_a"),
            b.variant_id.label("variant_b"),
            co_count.label("co_count"),
        )
        .join(b, and_(a.order_id == b.order_id, a.variant_id < b.variant_id))
        .group_by(a.variant_id, b.variant_id)
        .having(co_count >= min_co_purchase_count)
        .subquery("pairs")
    )

    per_variant = (
        select(
            OrderItem.variant_id.label("variant_id"),
            func.count(func.distinct(OrderItem.order_id)).label("orders"),
        )
        .group_by(OrderItem.variant_id)
        .subquery("per_variant")
    )
    orders_a = per_variant.alias("orders_a")
    orders_b = per_variant.alias("orders_b")

    score = cast(pairs.c.co_count, Float) / (
        orders_a.c.orders + orders_b.c.orders - pairs.c.co_count
    )

    scored = (
        select(pairs.c.variant_a, pairs.c.variant_b, pairs.c.co_count, score)
        .select_from(pairs)
        .join(orders_a, orders_a.c.variant_id == pairs.c.variant_a)
        .join(orders_b, orders_b.c.variant_id == pairs.c.variant_b)
    )

    await db.execute(delete(ProductCorrelation))
    await db.execute(
        insert(ProductCorrelation).from_select(
            ["variant_a", "variant_b", "co_purchase_count", "correlation_score"],
            scored,
        )
    )

    return (await db.execute(select(func.count()).select_from(ProductCorrelation))).scalar() or 0


async def refresh_sales_from_store(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Recompute sales_aggregates from stored order items."""
    rows = await db.execute(
        select(OrderItem.variant_id, OrderItem.quantity, Order.created_at)
        .join(Order, Order.order_id == OrderItem.order_id)
    )
    lines = [
        {"variant_id": variant_id, "quantity": quantity, "created_at": created_at}
        for variant_id, quantity, created_at in rows.all()
    ]
    windows = compute_sales_windows(lines, now=now)
    return await replace_sales_aggregates(db, windows)


async def recompute_order_analytics(
    db: AsyncSession,
    min_co_purchase_count: int = 2,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """All derived order tables, in one transaction."""
    returning = await refresh_returning_flags(db)
    customers = await refresh_customer_stats(db)
    correlations = await refresh_correlations(db, min_co_purchase_count)
    sales_rows = await refresh_sales_from_store(db, now=now)
    total_orders = (await db.execute(select(func.count()).select_from(Order))).scalar() or 0

    return {
        "total_orders": total_orders,
        "customers": customers,
        "returning_customers": returning,
        "correlations": correlations,
        "sales_aggregates": sales_rows,
    }


# =============================================================================
# ENGINE
# =============================================================================

class OrderSyncEngine:
    """
    Incremental order sync guarded by a SyncTracker.

    Example:
        engine = OrderSyncEngine()
        async with ShopifyClient(store, token) as client:
            result = await engine.sync_orders(client)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        tracker: Optional[SyncTracker] = None,
        session_scope: Optional[SessionScope] = None,
    ):
        self.settings = settings or get_settings()
        self.tracker = tracker or get_sync_tracker()
        self.session_scope = session_scope or get_db

    async def sync_orders(
        self,
        client: ShopifyClient,
        since: Optional[datetime] = None,
        fetch_all: bool = False,
    ) -> OrderSyncResult:
        """
        Fetch and persist orders, then recompute derived tables.

        Raises:
            SyncInProgressError: If another run holds the tracker
            ShopifyAPIError: If the first page of orders cannot be fetched
        """
        if not await self.tracker.try_begin():
            snapshot = await self.tracker.snapshot()
            logger.info("Order sync already running, request dropped", started_at=snapshot.started_at)
            raise SyncInProgressError(snapshot.started_at)

        try:
            result = await self._run(client, since, fetch_all)
        except Exception as e:
            await self.tracker.fail(e)
            raise
        except BaseException as e:
            self.tracker.abort(e)
            raise

        await self.tracker.complete(result.to_dict())
        return result

    async def _run(
        self,
        client: ShopifyClient,
        since: Optional[datetime],
        fetch_all: bool,
    ) -> OrderSyncResult:
        sync = self.settings.sync

        async with self.session_scope() as db:
            latest = await latest_order_timestamp(db)

        window_start = resolve_sync_window(
            latest,
            since=since,
            fetch_all=fetch_all,
            buffer_minutes=sync.order_lookback_buffer_minutes,
            default_days=sync.default_order_window_days,
        )
        logger.info(
            "Order sync started",
            store=client.store_domain,
            window_start=window_start.isoformat() if window_start else None,
            latest_stored=latest.isoformat() if latest else None,
        )

        fetched = await client.fetch_orders(
            created_at_min=window_start,
            max_pages=self.settings.shopify.max_order_pages,
        )

        result = OrderSyncResult(window_start=window_start)
        orders_seen: Counter = Counter()

        for order in fetched.items:
            customer_id = customer_id_of(order)
            if customer_id:
                orders_seen[customer_id] += 1
            # Provisional; corrected by refresh_returning_flags
            is_returning = bool(customer_id) and orders_seen[customer_id] > 1

            try:
                items = await self._persist_order(order, is_returning)
            except (SQLAlchemyError, KeyError, ValueError) as e:
                result.orders_failed += 1
                logger.warning("Order skipped", order_id=order.get("id"), error=str(e))
                continue

            result.orders_processed += 1
            result.items_processed += items

        async with self.session_scope() as db:
            result.analytics = await recompute_order_analytics(db, sync.min_co_purchase_count)

        if not fetched.complete:
            result.outcome = SyncOutcome.PARTIAL
            result.error = fetched.error
        elif fetched.capped:
            result.outcome = SyncOutcome.PARTIAL
            result.error = f"Stopped at the {fetched.pages}-page limit"

        await products_cache.invalidate_all()
        await analytics_cache.invalidate_all()

        logger.info(
            "Order sync finished",
            store=client.store_domain,
            outcome=result.outcome.value,
            orders=result.orders_processed,
            items=result.items_processed,
            failed=result.orders_failed,
            **result.analytics,
        )
        return result

    async def _persist_order(self, order: Dict[str, Any], is_returning: bool) -> int:
        """Upsert one order with its line items; returns the line item count."""
        order_row = normalize_order(order, is_returning)
        item_rows = normalize_line_items(order_row["order_id"], order.get("line_items") or [])

        async with self.session_scope() as db:
            await upsert(db, Order, [order_row], ["order_id"])
            # Lines removed by an order edit
            await db.execute(
                delete(OrderItem).where(
                    OrderItem.order_id == order_row["order_id"],
                    OrderItem.variant_id.notin_([row["variant_id"] for row in item_rows]),
                )
            )
            await upsert(db, OrderItem, item_rows, ["order_id", "variant_id"])

        return len(item_rows)
