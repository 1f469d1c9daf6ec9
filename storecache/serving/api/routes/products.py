"""
Products API Endpoints

Barcode lookups and the catalog with inventory forecast.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storecache.config import Settings, get_settings
from storecache.database.connection import get_db_dependency
from storecache.serving.api.schemas import ProductListResponse, ProductResponse
from storecache.serving.cache import products_cache
from storecache.serving.lookup import cache_status, find_product_by_barcode, inventory_forecast

router = APIRouter()


async def lookup_product(db: AsyncSession, barcode: str, settings: Settings) -> ProductResponse:
    """
    Barcode lookup through the products cache.

    Raises:
        HTTPException: 404 when no variant carries the barcode
    """
    code = barcode.strip()
    cache_key = f"barcode:{code}"

    cached = await products_cache.get(cache_key)
    if cached:
        return ProductResponse.model_validate(cached)

    product = await find_product_by_barcode(db, code, settings.sync.correlation_limit)
    if product is None:
        searched = (await cache_status(db))["cached_products"]
        raise HTTPException(
            status_code=404,
            detail={"error": "Product not found", "searchingFor": code, "searchedProducts": searched},
        )

    response = ProductResponse(product=product)
    await products_cache.set(cache_key, response.model_dump(mode="json"))
    return response


@router.get("", response_model=ProductListResponse)
async def list_products(
    limit: int = Query(500, ge=1, le=10000),
    with_sales_only: bool = Query(True, alias="withSalesOnly"),
    db: AsyncSession = Depends(get_db_dependency),
) -> ProductListResponse:
    """All variants with velocity, days of stock and risk, most urgent first."""
    products = await inventory_forecast(db, limit=limit, with_sales_only=with_sales_only)
    return ProductListResponse(count=len(products), products=products)


@router.get("/{barcode}", response_model=ProductResponse)
async def get_product_by_barcode(
    barcode: str,
    db: AsyncSession = Depends(get_db_dependency),
    settings: Settings = Depends(get_settings),
) -> ProductResponse:
    """Point lookup by barcode/UPC."""
    return await lookup_product(db, barcode, settings)
