"""
Scheduler for unattended syncs

Uses APScheduler to run the periodic order/product sync and one-shot
background catalog refreshes inside the API process.

Jobs:
    - store_sync:       every SYNC_SCHEDULE_INTERVAL_MINUTES (orders, products or both)
    - product_refresh:  once, right after a successful connect
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from storecache.config import get_settings
from storecache.ingestion.order_sync import OrderSyncEngine
from storecache.ingestion.product_sync import ProductSyncEngine
from storecache.ingestion.shopify_client import ShopifyAPIError, ShopifyClient
from storecache.ingestion.sync_status import SyncInProgressError

logger = structlog.get_logger(__name__)

scheduler = AsyncIOScheduler()


@dataclass(frozen=True)
class StoreCredentials:
    store_domain: str
    access_token: str


_credentials: Optional[StoreCredentials] = None


def remember_credentials(credentials: StoreCredentials) -> None:
    """Keep the last working credentials for unattended runs."""
    global _credentials
    _credentials = credentials


def get_credentials() -> Optional[StoreCredentials]:
    """Remembered credentials, else the configured defaults, else None."""
    if _credentials is not None:
        return _credentials

    shopify = get_settings().shopify
    if shopify.store_domain and shopify.access_token:
        return StoreCredentials(shopify.store_domain, shopify.access_token.get_secret_value())
    return None


# Sync Functions

async def refresh_products(credentials: StoreCredentials) -> None:
    """Catalog refresh followed by the sales aggregates."""
    engine = ProductSyncEngine()
    try:
        async with ShopifyClient(credentials.store_domain, credentials.access_token) as client:
            await engine.sync_products(client)
            await engine.sync_sales(client)
    except ShopifyAPIError as e:
        logger.error("Background product refresh failed", store=credentials.store_domain,
                     status_code=e.status_code, error=str(e))
    except Exception as e:
        logger.exception("Background product refresh crashed", store=credentials.store_domain, error=str(e))


async def sync_orders(credentials: StoreCredentials) -> None:
    engine = OrderSyncEngine()
    try:
        async with ShopifyClient(credentials.store_domain, credentials.access_token) as client:
            await engine.sync_orders(client)
    except SyncInProgressError:
        logger.info("Scheduled order sync skipped, a sync is running")
    except ShopifyAPIError as e:
        logger.error("Scheduled order sync failed", store=credentials.store_domain,
                     status_code=e.status_code, error=str(e))
    except Exception as e:
        logger.exception("Scheduled order sync crashed", store=credentials.store_domain, error=str(e))


async def run_scheduled_sync() -> None:
    """Interval job body; a no-op until credentials are known."""
    credentials = get_credentials()
    if credentials is None:
        logger.debug("Scheduled sync skipped, no store credentials yet")
        return

    target = get_settings().sync.schedule_target
    logger.info("Scheduled sync started", store=credentials.store_domain, target=target)

    if target in ("products", "both"):
        await refresh_products(credentials)
    if target in ("orders", "both"):
        await sync_orders(credentials)


def trigger_product_refresh(credentials: StoreCredentials) -> None:
    """Schedule a one-shot background refresh without waiting for it."""
    scheduler.add_job(
        refresh_products,
        trigger=DateTrigger(),
        args=[credentials],
        id="product_refresh",
        name="Product cache refresh",
        replace_existing=True,
        max_instances=1,
    )
    logger.info("Product refresh scheduled", store=credentials.store_domain)


def setup_scheduler() -> None:
    """Register the periodic job."""
    sync = get_settings().sync
    scheduler.add_job(
        run_scheduled_sync,
        trigger=IntervalTrigger(minutes=sync.schedule_interval_minutes),
        id="store_sync",
        name=f"Store sync ({sync.schedule_target})",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )


def start_scheduler() -> None:
    """Start the scheduler"""
    if get_settings().sync.schedule_enabled:
        setup_scheduler()
    scheduler.start()
    logger.info("Scheduler started", jobs=[job.id for job in scheduler.get_jobs()])


def stop_scheduler() -> None:
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduled_jobs() -> List[Dict[str, Any]]:
    """Job id, name, next run and trigger for each scheduled job."""
    jobs = []
    for job in scheduler.get_jobs():
        next_run = getattr(job, "next_run_time", None)
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": next_run.isoformat() if next_run else None,
            "trigger": str(job.trigger),
        })
    return jobs
