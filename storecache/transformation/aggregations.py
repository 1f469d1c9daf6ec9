"""
Sales Window Aggregation

Rolling unit counts per variant over fixed lookback windows, computed with
Polars from exploded order line items.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

import polars as pl
import structlog

from storecache.transformation.normalizers import as_utc

logger = structlog.get_logger(__name__)

# Lookback windows in days; each maps to a units_<n>d column
SALES_WINDOWS = (1, 7, 30, 90, 365)

LINE_SCHEMA = {
    "variant_id": pl.Utf8,
    "quantity": pl.Int64,
    "created_at": pl.Datetime("us"),
}


def _naive_utc(value: Any) -> datetime:
    return as_utc(value).replace(tzinfo=None)


def lines_frame(lines: Iterable[Mapping[str, Any]]) -> pl.DataFrame:
    """
    Build a typed frame of (variant_id, quantity, created_at).

    Timestamps are converted to naive UTC so the frame has one time basis.
    """
    records = [
        {
            "variant_id": str(line["variant_id"]),
            "quantity": int(line.get("quantity") or 0),
            "created_at": _naive_utc(line["created_at"]),
        }
        for line in lines
        if line.get("variant_id") is not None and line.get("created_at") is not None
    ]
    return pl.DataFrame(records, schema=LINE_SCHEMA)


def order_lines(orders: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Explode REST orders into (variant_id, quantity, created_at) lines."""
    lines = []
    for order in orders:
        created_at = order.get("created_at")
        for item in order.get("line_items") or []:
            if item.get("variant_id") is None:
                continue
            lines.append({
                "variant_id": str(item["variant_id"]),
                "quantity": item.get("quantity") or 0,
                "created_at": created_at,
            })
    return lines


def compute_sales_windows(
    lines: Iterable[Mapping[str, Any]],
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Unit counts per variant for each window plus all-time.

    Args:
        lines: Mappings with variant_id, quantity, created_at
        now: Reference time (defaults to current UTC time)

    Returns:
        One dict per variant: variant_id, units_1d ... units_365d, units_all_time
    """
    now = _naive_utc(now or datetime.now(timezone.utc))
    df = lines_frame(lines)

    if df.is_empty():
        return []

    window_exprs = [
        pl.col("quantity")
        .filter(pl.col("created_at") >= pl.lit(now - timedelta(days=days)))
        .sum()
        .alias(f"units_{days}d")
        for days in SALES_WINDOWS
    ]

    result = (
        df.group_by("variant_id")
        .agg(window_exprs + [pl.col("quantity").sum().alias("units_all_time")])
        .sort("variant_id")
    )

    logger.debug("Computed sales windows", variants=result.height, lines=df.height)
    return result.to_dicts()
