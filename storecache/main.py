"""
FastAPI Application

Main entry point for the storefront lookup service.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from storecache.config import get_settings
from storecache.config.logging import configure_logging
from storecache.database.connection import init_database, close_database
from storecache.ingestion.scheduler import start_scheduler, stop_scheduler
from storecache.ingestion.shopify_client import ShopifyAPIError
from storecache.ingestion.sync_status import SyncInProgressError
from storecache.serving.cache import init_redis, close_redis
from storecache.serving.api.middleware import RequestLoggingMiddleware
from storecache.serving.api.routes import (
    health_router,
    shopify_router,
    products_router,
    analytics_router,
    orders_router,
)

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    logger.info("Starting storefront lookup service", environment=settings.app_env)

    # The database is required; startup fails without it
    await init_database()

    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis unavailable, response caching off", error=str(e))

    start_scheduler()

    yield

    logger.info("Shutting down...")
    stop_scheduler()
    await close_redis()
    await close_database()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Storefront Lookup API",
        description="Barcode lookups, catalog cache and order analytics over the Shopify Admin API",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    # API routes
    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(shopify_router, prefix="/api/shopify", tags=["Shopify"])
    app.include_router(products_router, prefix="/api/products", tags=["Products"])
    app.include_router(orders_router, prefix="/api/orders", tags=["Orders"])
    app.include_router(analytics_router, prefix="/api", tags=["Analytics"])

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors to HTTP responses with an ``error`` field."""

    @app.exception_handler(ShopifyAPIError)
    async def shopify_error_handler(request: Request, exc: ShopifyAPIError) -> JSONResponse:
        status_code = exc.status_code if exc.status_code and exc.status_code >= 400 else 502
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": str(exc)},
        )

    @app.exception_handler(SyncInProgressError)
    async def sync_in_progress_handler(request: Request, exc: SyncInProgressError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={
                "success": False,
                "processing": True,
                "error": str(exc),
                "startedAt": exc.started_at.isoformat() if exc.started_at else None,
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if isinstance(exc.detail, dict):
            content = {"success": False, **exc.detail}
        else:
            content = {"success": False, "error": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"success": False, "error": "Invalid request", "detail": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without the raw input or exception context."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
