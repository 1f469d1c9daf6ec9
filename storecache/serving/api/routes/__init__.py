"""
API Routes Module
"""
from .health import router as health_router
from .shopify import router as shopify_router
from .products import router as products_router
from .analytics import router as analytics_router
from .orders import router as orders_router

__all__ = [
    "health_router",
    "shopify_router",
    "products_router",
    "analytics_router",
    "orders_router",
]
