"""
Orders API Endpoints

Order sync trigger and sync status.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends

from storecache.ingestion.order_sync import OrderSyncEngine
from storecache.ingestion.scheduler import get_scheduled_jobs
from storecache.ingestion.sync_status import SyncTracker, get_sync_tracker
from storecache.serving.api.dependencies import ClientFactory, get_client_factory, get_order_engine
from storecache.serving.api.schemas import OrderSyncRequest, OrderSyncResponse, SyncStatusResponse

router = APIRouter()


async def run_order_sync(
    engine: OrderSyncEngine,
    client_factory: ClientFactory,
    store_name: str,
    access_token: str,
    since: Optional[datetime] = None,
    fetch_all: bool = False,
) -> OrderSyncResponse:
    """
    Run one order sync to completion.

    SyncInProgressError and ShopifyAPIError propagate to the app's
    exception handlers.
    """
    async with client_factory(store_name, access_token) as client:
        result = await engine.sync_orders(client, since=since, fetch_all=fetch_all)
    return OrderSyncResponse(**result.to_dict())


async def sync_status(tracker: SyncTracker) -> SyncStatusResponse:
    snapshot = await tracker.snapshot()
    return SyncStatusResponse(
        state=snapshot.state.value,
        is_processing=snapshot.is_processing,
        started_at=snapshot.started_at,
        last_completed_at=snapshot.last_completed_at,
        last_result=snapshot.last_result,
        last_error=snapshot.last_error,
        jobs=get_scheduled_jobs(),
    )


@router.get("/sync-status", response_model=SyncStatusResponse)
async def get_sync_status(tracker: SyncTracker = Depends(get_sync_tracker)) -> SyncStatusResponse:
    """Current order sync state."""
    return await sync_status(tracker)


@router.post("/sync", response_model=OrderSyncResponse)
async def trigger_order_sync(
    request: OrderSyncRequest,
    engine: OrderSyncEngine = Depends(get_order_engine),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> OrderSyncResponse:
    """Incremental order sync; 409 while another sync runs."""
    return await run_order_sync(
        engine,
        client_factory,
        request.store_name,
        request.access_token,
        since=request.since,
        fetch_all=request.fetch_all,
    )
