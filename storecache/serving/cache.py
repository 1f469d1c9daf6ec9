"""
Response Cache

Barcode lookups and analytics overviews are cached in Redis as JSON under
``<app_name>:<namespace>:<key>``. Syncs drop a whole namespace once the
tables behind it change.

Redis is optional: until ``init_redis()`` succeeds every read misses and
every write is skipped, and a Redis error mid-request is logged and treated
the same way.
"""

import json
from typing import Any, Optional

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from storecache.config import get_settings

logger = structlog.get_logger(__name__)

_pool: Optional[ConnectionPool] = None
_client: Optional[Redis] = None


async def init_redis() -> Optional[Redis]:
    """
    Connect to Redis and verify the connection.

    Returns:
        The client, or None when caching is switched off

    Raises:
        RedisError: If the server cannot be reached
    """
    global _pool, _client

    config = get_settings().redis
    if not config.enabled:
        logger.info("Response cache disabled")
        return None
    if _client is not None:
        return _client

    pool = ConnectionPool.from_url(
        config.url,
        max_connections=config.max_connections,
        socket_timeout=config.socket_timeout,
        decode_responses=config.decode_responses,
    )
    client = Redis(connection_pool=pool)
    try:
        await client.ping()
    except RedisError:
        await pool.disconnect()
        raise

    _pool, _client = pool, client
    logger.info("Response cache connected", url=config.url.rsplit("@", 1)[-1])
    return client


async def close_redis() -> None:
    global _pool, _client

    if _client is not None:
        await _client.aclose()
    if _pool is not None:
        await _pool.disconnect()
    _pool, _client = None, None


def get_redis() -> Optional[Redis]:
    """Active client, or None while the cache is off."""
    return _client


class CacheManager:
    """
    One namespace of cached JSON documents.

    Example:
        products_cache = CacheManager("products", default_ttl=300)
        await products_cache.set("barcode:012345", payload)
        payload = await products_cache.get("barcode:012345")
        await products_cache.invalidate_all()
    """

    def __init__(self, namespace: str, default_ttl: int = 300):
        self.namespace = namespace
        self.default_ttl = default_ttl

    @property
    def prefix(self) -> str:
        return f"{get_settings().app_name}:{self.namespace}:"

    async def get(self, key: str) -> Optional[Any]:
        """Cached document, or None on a miss."""
        client = get_redis()
        if client is None:
            return None

        try:
            raw = await client.get(self.prefix + key)
        except RedisError as e:
            logger.warning("Cache read failed", namespace=self.namespace, key=key, error=str(e))
            return None

        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a JSON-serializable document; False when nothing was written."""
        client = get_redis()
        if client is None:
            return False

        try:
            await client.set(self.prefix + key, json.dumps(value, default=str), ex=ttl or self.default_ttl)
        except RedisError as e:
            logger.warning("Cache write failed", namespace=self.namespace, key=key, error=str(e))
            return False
        return True

    async def invalidate_all(self) -> int:
        """Delete every key in the namespace; returns the number removed."""
        client = get_redis()
        if client is None:
            return 0

        try:
            keys = [key async for key in client.scan_iter(match=self.prefix + "*")]
            removed = await client.delete(*keys) if keys else 0
        except RedisError as e:
            logger.warning("Cache invalidation failed", namespace=self.namespace, error=str(e))
            return 0

        if removed:
            logger.debug("Cache namespace invalidated", namespace=self.namespace, keys=removed)
        return removed


products_cache = CacheManager("products", default_ttl=300)
analytics_cache = CacheManager("analytics", default_ttl=600)
