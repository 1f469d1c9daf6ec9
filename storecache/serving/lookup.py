"""
Query/Lookup Service

Read-only queries against the cache tables:
- Barcode point lookup with sales counters and correlated products
- Co-purchase correlation listings
- Calendar sales rollups in the storefront's time zone
- Inventory risk classification and forecast
- Catalog statistics
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from storecache.database.models import (
    CustomerStats,
    Order,
    OrderItem,
    ProductCorrelation,
    ProductVariant,
    RiskLevel,
    SalesAggregate,
)
from storecache.transformation.aggregations import SALES_WINDOWS
from storecache.transformation.normalizers import as_utc, display_name

logger = structlog.get_logger(__name__)

# Days of stock reported for a variant that is not selling
NO_SALES_DAYS = 999.0

VELOCITY_WINDOW_DAYS = 30
FORECAST_HORIZON_DAYS = 30

RISK_THRESHOLDS = (
    (3, RiskLevel.CRITICAL),
    (7, RiskLevel.HIGH),
    (14, RiskLevel.MEDIUM),
)

SALES_FIELDS = [f"units_{days}d" for days in SALES_WINDOWS] + ["units_all_time"]


# =============================================================================
# INVENTORY RISK
# =============================================================================

def daily_velocity(units_30d: Optional[int]) -> float:
    """Average units per day over the last 30 days."""
    return (units_30d or 0) / VELOCITY_WINDOW_DAYS


def classify_inventory_risk(quantity: Optional[int], velocity: float) -> Tuple[float, RiskLevel]:
    """
    Days of stock remaining and the matching risk level.

    Out-of-stock and oversold variants count as zero days. A variant that
    is not selling but has stock gets NO_SALES_DAYS.
    """
    quantity = quantity or 0

    if quantity <= 0:
        days = 0.0
    elif velocity <= 0:
        return NO_SALES_DAYS, RiskLevel.LOW
    else:
        days = round(quantity / velocity, 1)

    for limit, level in RISK_THRESHOLDS:
        if days <= limit:
            return days, level
    return days, RiskLevel.LOW


def sales_counts(sales: Optional[SalesAggregate]) -> Dict[str, int]:
    """Window counters, zero when the variant has no aggregate row."""
    return {name: (getattr(sales, name) or 0) if sales else 0 for name in SALES_FIELDS}


def _money(value) -> Optional[float]:
    return None if value is None else float(value)


def variant_summary(variant: ProductVariant, sales: Optional[SalesAggregate]) -> Dict[str, Any]:
    counts = sales_counts(sales)
    velocity = daily_velocity(counts["units_30d"])
    days, risk = classify_inventory_risk(variant.inventory_quantity, velocity)

    return {
        "variant_id": variant.variant_id,
        "product_id": variant.product_id,
        "name": display_name(variant.product_title, variant.variant_title),
        "product_title": variant.product_title,
        "variant_title": variant.variant_title,
        "barcode": variant.barcode,
        "sku": variant.sku,
        "vendor": variant.vendor,
        "price": _money(variant.price),
        "compare_at_price": _money(variant.compare_at_price),
        "cost": _money(variant.cost),
        "cost_is_estimated": bool(variant.cost_is_estimated),
        "inventory_quantity": variant.inventory_quantity or 0,
        "sales": counts,
        "monthly_sales": counts["units_30d"],
        "daily_velocity": round(velocity, 3),
        "days_of_stock": days,
        "risk_level": risk.value,
    }


# =============================================================================
# LOOKUPS
# =============================================================================

async def find_product_by_barcode(
    db: AsyncSession,
    barcode: str,
    correlation_limit: int = 5,
) -> Optional[Dict[str, Any]]:
    """
    Variant carrying a barcode, with sales counters and correlated products.

    Barcodes are not unique; the lowest variant id wins so repeated lookups
    agree.
    """
    code = (barcode or "").strip()
    if not code:
        return None

    row = (await db.execute(
        select(ProductVariant, SalesAggregate)
        .outerjoin(SalesAggregate, SalesAggregate.variant_id == ProductVariant.variant_id)
        .where(ProductVariant.barcode == code)
        .order_by(ProductVariant.variant_id)
        .limit(1)
    )).first()

    if row is None:
        logger.debug("Barcode not found", barcode=code)
        return None

    variant, sales = row
    product = variant_summary(variant, sales)
    product["correlated"] = (
        await list_correlations(db, variant.variant_id, correlation_limit)
        if correlation_limit > 0 else []
    )
    return product


async def list_correlations(
    db: AsyncSession,
    variant_id: Optional[str] = None,
    limit: int = 20,
) -> List[Dict[str, Any]]:
    """
    Co-purchased variants, strongest first.

    With a variant id, each row describes the partner of that variant;
    without one, the top pairs overall.
    """
    order = (ProductCorrelation.co_purchase_count.desc(), ProductCorrelation.correlation_score.desc())

    if variant_id is not None:
        partner = case(
            (ProductCorrelation.variant_a == variant_id, ProductCorrelation.variant_b),
            else_=ProductCorrelation.variant_a,
        )
        result = await db.execute(
            select(
                partner.label("variant_id"),
                ProductCorrelation.co_purchase_count,
                ProductCorrelation.correlation_score,
                ProductVariant.product_title,
                ProductVariant.variant_title,
                ProductVariant.barcode,
                ProductVariant.price,
            )
            .outerjoin(ProductVariant, ProductVariant.variant_id == partner)
            .where(or_(
                ProductCorrelation.variant_a == variant_id,
                ProductCorrelation.variant_b == variant_id,
            ))
            .order_by(*order, partner)
            .limit(limit)
        )
        return [
            {
                "variant_id": row.variant_id,
                "name": display_name(row.product_title, row.variant_title) if row.product_title else None,
                "barcode": row.barcode,
                "price": _money(row.price),
                "co_purchase_count": row.co_purchase_count,
                "correlation_score": round(row.correlation_score, 4),
            }
            for row in result.all()
        ]

    variant_a = aliased(ProductVariant)
    variant_b = aliased(ProductVariant)
    result = await db.execute(
        select(
            ProductCorrelation,
            variant_a.product_title.label("title_a"),
            variant_a.variant_title.label("variant_title_a"),
            variant_b.product_title.label("title_b"),
            variant_b.variant_title.label("variant_title_b"),
        )
        .outerjoin(variant_a, variant_a.variant_id == ProductCorrelation.variant_a)
        .outerjoin(variant_b, variant_b.variant_id == ProductCorrelation.variant_b)
        .order_by(*order, ProductCorrelation.variant_a, ProductCorrelation.variant_b)
        .limit(limit)
    )
    return [
        {
            "variant_a": row.ProductCorrelation.variant_a,
            "variant_b": row.ProductCorrelation.variant_b,
            "name_a": display_name(row.title_a, row.variant_title_a) if row.title_a else None,
            "name_b": display_name(row.title_b, row.variant_title_b) if row.title_b else None,
            "co_purchase_count": row.ProductCorrelation.co_purchase_count,
            "correlation_score": round(row.ProductCorrelation.correlation_score, 4),
        }
        for row in result.all()
    ]


# =============================================================================
# ANALYTICS
# =============================================================================

def period_starts(store_timezone: str, now: Optional[datetime] = None) -> Dict[str, datetime]:
    """
    UTC instants at which today, this week (Monday), this month and this
    year began on the storefront's wall clock.
    """
    tz = ZoneInfo(store_timezone)
    local_now = (as_utc(now) if now else datetime.now(timezone.utc)).astimezone(tz)
    today = local_now.replace(hour=0, minute=0, second=0, microsecond=0)

    starts = {
        "today": today,
        "week": today - timedelta(days=today.weekday()),
        "month": today.replace(day=1),
        "year": today.replace(month=1, day=1),
    }
    # ZoneInfo derives the offset from the wall time, so DST is handled here
    return {name: start.astimezone(timezone.utc) for name, start in starts.items()}


async def sales_rollup(
    db: AsyncSession,
    store_timezone: str = "America/New_York",
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Order count and revenue for today, this week, this month and this year."""
    now = as_utc(now) if now else datetime.now(timezone.utc)
    periods = {}

    for name, start in period_starts(store_timezone, now).items():
        orders, revenue = (await db.execute(
            select(
                func.count(Order.order_id),
                func.coalesce(func.sum(Order.total_price), 0),
            ).where(Order.created_at >= start, Order.created_at <= now)
        )).one()

        revenue = float(revenue or 0)
        periods[name] = {
            "start": start.isoformat(),
            "orders": orders,
            "revenue": round(revenue, 2),
            "average_order_value": round(revenue / orders, 2) if orders else 0.0,
        }

    return {"timezone": store_timezone, "generated_at": now.isoformat(), "periods": periods}


async def inventory_forecast(
    db: AsyncSession,
    limit: Optional[int] = None,
    with_sales_only: bool = True,
) -> List[Dict[str, Any]]:
    """
    Variants with velocity, days of stock, risk and projected 30-day demand,
    most urgent first.
    """
    query = (
        select(ProductVariant, SalesAggregate)
        .outerjoin(SalesAggregate, SalesAggregate.variant_id == ProductVariant.variant_id)
        .order_by(ProductVariant.variant_id)
    )
    if with_sales_only:
        query = query.where(SalesAggregate.units_all_time > 0)

    rows = []
    for variant, sales in (await db.execute(query)).all():
        summary = variant_summary(variant, sales)
        projected = math.ceil(summary["daily_velocity"] * FORECAST_HORIZON_DAYS)
        summary["projected_demand_30d"] = projected
        summary["reorder_quantity"] = max(0, projected - summary["inventory_quantity"])
        rows.append(summary)

    rows.sort(key=lambda r: (r["days_of_stock"], r["variant_id"]))
    return rows[:limit] if limit else rows


async def catalog_stats(db: AsyncSession) -> Dict[str, Any]:
    """Row counts and sync timestamps across the cache."""

    async def scalar(query):
        return (await db.execute(query)).scalar()

    last_product_sync = await scalar(select(func.max(ProductVariant.synced_at)))
    last_order_sync = await scalar(select(func.max(Order.synced_at)))
    latest_order = await scalar(select(func.max(Order.created_at)))

    return {
        "variants": await scalar(select(func.count()).select_from(ProductVariant)) or 0,
        "products": await scalar(select(func.count(func.distinct(ProductVariant.product_id)))) or 0,
        "variants_with_barcode": await scalar(
            select(func.count()).select_from(ProductVariant).where(ProductVariant.barcode.isnot(None))
        ) or 0,
        "orders": await scalar(select(func.count()).select_from(Order)) or 0,
        "order_items": await scalar(select(func.count()).select_from(OrderItem)) or 0,
        "correlations": await scalar(select(func.count()).select_from(ProductCorrelation)) or 0,
        "customers": await scalar(select(func.count()).select_from(CustomerStats)) or 0,
        "returning_customers": await scalar(
            select(func.count()).select_from(CustomerStats).where(CustomerStats.order_count > 1)
        ) or 0,
        "last_product_sync": _iso(last_product_sync),
        "last_order_sync": _iso(last_order_sync),
        "latest_order_at": _iso(latest_order),
    }


async def cache_status(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Cached variant count and seconds since the last catalog refresh."""
    now = as_utc(now) if now else datetime.now(timezone.utc)
    count, last_synced = (await db.execute(
        select(func.count(ProductVariant.variant_id), func.max(ProductVariant.synced_at))
    )).one()

    last_synced = as_utc(last_synced)
    age = int((now - last_synced).total_seconds()) if last_synced else None
    return {"cached_products": count or 0, "cache_age": age}


def _iso(value) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None
