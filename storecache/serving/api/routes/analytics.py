"""
Analytics API Endpoints

Catalog statistics, co-purchase correlations and sales rollups.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storecache.config import Settings, get_settings
from storecache.database.connection import get_db_dependency
from storecache.database.models import RiskLevel
from storecache.serving.api.schemas import AnalyticsResponse, CatalogStats, CorrelationsResponse
from storecache.serving.cache import analytics_cache
from storecache.serving.lookup import (
    catalog_stats,
    inventory_forecast,
    list_correlations,
    sales_rollup,
)

router = APIRouter()

AT_RISK_LEVELS = {RiskLevel.CRITICAL.value, RiskLevel.HIGH.value}
AT_RISK_LIMIT = 20


async def build_analytics(db: AsyncSession, settings: Settings) -> AnalyticsResponse:
    """Sales rollup, catalog stats, at-risk variants and top pairs."""
    cached = await analytics_cache.get("overview")
    if cached:
        return AnalyticsResponse.model_validate(cached)

    forecast = await inventory_forecast(db)
    response = AnalyticsResponse(
        sales=await sales_rollup(db, settings.sync.store_timezone),
        stats=await catalog_stats(db),
        at_risk=[p for p in forecast if p["risk_level"] in AT_RISK_LEVELS][:AT_RISK_LIMIT],
        top_correlations=await list_correlations(db, limit=10),
    )

    await analytics_cache.set("overview", response.model_dump(mode="json"), ttl=60)
    return response


async def correlations_for(db: AsyncSession, variant_id: Optional[str], limit: int) -> CorrelationsResponse:
    return CorrelationsResponse(
        variant_id=variant_id,
        correlations=await list_correlations(db, variant_id, limit),
    )


@router.get("/stats", response_model=CatalogStats)
async def get_stats(db: AsyncSession = Depends(get_db_dependency)) -> CatalogStats:
    """Row counts and sync timestamps."""
    return CatalogStats(**await catalog_stats(db))


@router.get("/correlations", response_model=CorrelationsResponse)
async def get_correlations(
    variant_id: Optional[str] = Query(None, alias="variantId"),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db_dependency),
) -> CorrelationsResponse:
    """Products bought together, strongest first."""
    return await correlations_for(db, variant_id, limit)


@router.get("/analytics", response_model=AnalyticsResponse)
async def get_analytics(
    db: AsyncSession = Depends(get_db_dependency),
    settings: Settings = Depends(get_settings),
) -> AnalyticsResponse:
    """Today/week/month/year sales in the store's time zone plus inventory risk."""
    return await build_analytics(db, settings)
