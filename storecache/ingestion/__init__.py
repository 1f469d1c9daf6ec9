"""
Ingestion Module

Shopify Admin API client and the product/order sync engines.
"""
from .shopify_client import ShopifyAPIError, ShopifyClient, FetchResult
from .sync_status import SyncInProgressError, SyncState, SyncTracker, get_sync_tracker
from .product_sync import ProductSyncEngine
from .order_sync import OrderSyncEngine, resolve_sync_window

__all__ = [
    "ShopifyAPIError",
    "ShopifyClient",
    "FetchResult",
    "SyncInProgressError",
    "SyncState",
    "SyncTracker",
    "get_sync_tracker",
    "ProductSyncEngine",
    "OrderSyncEngine",
    "resolve_sync_window",
]
