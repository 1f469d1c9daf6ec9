"""
Shopify Action Endpoint

Single POST path for the point-of-sale client. The body's ``action`` tag
selects the operation; see ``schemas.ShopifyRequest`` for the variants.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from storecache.config import Settings, get_settings
from storecache.database.connection import get_db_dependency
from storecache.ingestion.order_sync import OrderSyncEngine
from storecache.ingestion.product_sync import ProductSyncEngine
from storecache.ingestion.scheduler import (
    StoreCredentials,
    remember_credentials,
    trigger_product_refresh,
)
from storecache.ingestion.sync_status import SyncTracker, get_sync_tracker
from storecache.serving.api.dependencies import (
    ClientFactory,
    get_client_factory,
    get_order_engine,
    get_product_engine,
)
from storecache.serving.api.routes.analytics import build_analytics, correlations_for
from storecache.serving.api.routes.orders import run_order_sync, sync_status
from storecache.serving.api.routes.products import lookup_product
from storecache.serving.api.schemas import (
    ConnectResponse,
    GetAnalyticsAction,
    GetCorrelationsAction,
    GetProductAction,
    GetSyncStatusAction,
    ProductSyncResponse,
    RefreshProductsAction,
    ServiceStatus,
    ShopifyRequest,
    SyncOrdersAction,
    TestConnectionAction,
)
from storecache.serving.lookup import cache_status

logger = structlog.get_logger(__name__)
router = APIRouter()


async def refresh_stale_catalog(
    action: GetProductAction,
    settings: Settings,
    client_factory: ClientFactory,
    product_engine: ProductSyncEngine,
) -> None:
    """
    Keep the catalog warm for lookups that carry credentials.

    An empty catalog is refreshed before the lookup runs; one older than
    ``product_cache_max_age_minutes`` is refreshed in the background.
    """
    if not (action.store_name and action.access_token):
        return

    async with product_engine.session_scope() as scope:
        status = await cache_status(scope)

    if status["cached_products"] == 0:
        logger.info("Product cache empty, refreshing before lookup", store=action.store_name)
        async with client_factory(action.store_name, action.access_token) as client:
            await product_engine.sync_products(client)
        return

    max_age = settings.sync.product_cache_max_age_minutes * 60
    if status["cache_age"] is not None and status["cache_age"] > max_age:
        logger.info("Product cache stale", store=action.store_name, cache_age=status["cache_age"])
        trigger_product_refresh(StoreCredentials(action.store_name, action.access_token))


@router.get("", response_model=ServiceStatus)
async def service_status(db: AsyncSession = Depends(get_db_dependency)) -> ServiceStatus:
    """Liveness with the cached catalog size and age."""
    return ServiceStatus(**await cache_status(db))


@router.post("", response_model=None)
async def dispatch_action(
    request: ShopifyRequest,
    db: AsyncSession = Depends(get_db_dependency),
    settings: Settings = Depends(get_settings),
    client_factory: ClientFactory = Depends(get_client_factory),
    product_engine: ProductSyncEngine = Depends(get_product_engine),
    order_engine: OrderSyncEngine = Depends(get_order_engine),
    tracker: SyncTracker = Depends(get_sync_tracker),
) -> BaseModel:
    """Run the action named in the body."""
    action = request.root
    logger.info("Shopify action", action=action.action)

    if isinstance(action, TestConnectionAction):
        async with client_factory(action.store_name, action.access_token) as client:
            shop = await client.get_shop()
            credentials = StoreCredentials(client.store_domain, action.access_token)

        remember_credentials(credentials)
        trigger_product_refresh(credentials)
        return ConnectResponse(
            shop_name=shop.get("name"),
            store=credentials.store_domain,
            refresh_scheduled=True,
        )

    if isinstance(action, RefreshProductsAction):
        async with client_factory(action.store_name, action.access_token) as client:
            result = await product_engine.sync_products(client)
            sales = await product_engine.sync_sales(client) if action.include_sales else None

        return ProductSyncResponse(
            **result.to_dict(),
            sales=sales.to_dict() if sales else None,
        )

    if isinstance(action, SyncOrdersAction):
        return await run_order_sync(
            order_engine,
            client_factory,
            action.store_name,
            action.access_token,
            since=action.since,
            fetch_all=action.fetch_all,
        )

    if isinstance(action, GetProductAction):
        await refresh_stale_catalog(action, settings, client_factory, product_engine)
        return await lookup_product(db, action.upc, settings)

    if isinstance(action, GetCorrelationsAction):
        return await correlations_for(db, action.variant_id, action.limit)

    if isinstance(action, GetAnalyticsAction):
        return await build_analytics(db, settings)

    if isinstance(action, GetSyncStatusAction):
        return await sync_status(tracker)

    # The request union is closed; validation rejects anything else
    raise ValueError(f"Unhandled action: {action.action}")
