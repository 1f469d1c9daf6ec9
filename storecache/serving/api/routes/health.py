"""
Health Check Endpoints

``/health`` reports every dependency; ``/health/live`` and ``/health/ready``
are the orchestrator probes.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Response
from pydantic import BaseModel
from redis.exceptions import RedisError

from storecache.config import get_settings
from storecache.database.connection import check_database_health
from storecache.ingestion.sync_status import SyncState, get_sync_tracker
from storecache.serving.cache import get_redis

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


async def _cache_check() -> Dict[str, Any]:
    redis = get_redis()
    if redis is None:
        return {"status": "disabled"}
    try:
        await redis.ping()
    except RedisError as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


async def _order_sync_check() -> Dict[str, Any]:
    snapshot = await get_sync_tracker().snapshot()
    return {
        "state": snapshot.state.value,
        "last_completed_at": snapshot.last_completed_at,
        "last_error": snapshot.last_error,
    }


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Database, response cache and order sync state.

    Unhealthy without the database; degraded when Redis is configured but
    failing or the last order sync failed. A disabled cache is not a fault.
    """
    settings = get_settings()
    checks = {
        "database": await check_database_health(),
        "cache": await _cache_check(),
        "order_sync": await _order_sync_check(),
    }

    if checks["database"]["status"] != "healthy":
        status = "unhealthy"
    elif checks["cache"]["status"] == "unhealthy" or checks["order_sync"]["state"] == SyncState.FAILED.value:
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """503 until the database answers."""
    if (await check_database_health())["status"] != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}
