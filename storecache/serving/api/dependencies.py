"""
Route Dependencies

Factories for the remote client and the sync engines, resolved per request
so they can be overridden through ``app.dependency_overrides``.
"""

from typing import Callable

from storecache.ingestion.order_sync import OrderSyncEngine
from storecache.ingestion.product_sync import ProductSyncEngine
from storecache.ingestion.shopify_client import ShopifyClient

# (store_domain, access_token) -> unopened client
ClientFactory = Callable[[str, str], ShopifyClient]


def get_client_factory() -> ClientFactory:
    return ShopifyClient


def get_product_engine() -> ProductSyncEngine:
    return ProductSyncEngine()


def get_order_engine() -> OrderSyncEngine:
    return OrderSyncEngine()
