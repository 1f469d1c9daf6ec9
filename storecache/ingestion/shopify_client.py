"""
Shopify Admin API Client

Authenticated access to the REST and GraphQL Admin endpoints:
- Cursor pagination via the ``Link`` header's ``rel="next"`` relation
- Fixed delay between page requests to stay under the rate limit
- Typed failures for non-2xx responses; nothing is retried
- Partial results when a later page fails
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import parse_qs, urlparse

import httpx
import structlog

from storecache.config import get_settings

logger = structlog.get_logger(__name__)

GRAPHQL_BATCH_SIZE = 100

UNIT_COST_QUERY = """
query InventoryItemCosts($ids: [ID!]!) {
  nodes(ids: $ids) {
    ... on InventoryItem {
      id
      unitCost { amount }
    }
  }
}
"""


class ShopifyAPIError(Exception):
    """Remote API failure carrying the HTTP status and response body."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass
class FetchResult:
    """Records gathered by a paginated fetch."""
    items: List[Dict[str, Any]] = field(default_factory=list)
    pages: int = 0
    complete: bool = True
    capped: bool = False
    error: Optional[str] = None

    @property
    def partial(self) -> bool:
        return not self.complete


def parse_next_cursor(link_header: Optional[str]) -> Optional[str]:
    """
    Extract the ``page_info`` cursor of the ``rel="next"`` link.

    Example header:
        <https://x.myshopify.com/admin/api/2024-01/products.json?limit=250&page_info=abc>; rel="next"
    """
    if not link_header:
        return None

    for part in link_header.split(","):
        if 'rel="next"' not in part:
            continue
        url = part.split(";")[0].strip().strip("<>")
        values = parse_qs(urlparse(url).query).get("page_info")
        return values[0] if values else None

    return None


def normalize_store_domain(store_domain: str) -> str:
    """Bare host name from whatever the client sent."""
    domain = store_domain.strip()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    return domain.rstrip("/")


class ShopifyClient:
    """
    Client for one store's Admin API.

    Example:
        async with ShopifyClient("my-store.myshopify.com", token) as client:
            shop = await client.get_shop()
            result = await client.fetch_products()
    """

    def __init__(
        self,
        store_domain: str,
        access_token: str,
        *,
        api_version: Optional[str] = None,
        page_size: Optional[int] = None,
        page_delay_seconds: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = get_settings().shopify

        self.store_domain = normalize_store_domain(store_domain)
        self.access_token = access_token
        self.api_version = api_version or config.api_version
        self.page_size = page_size or config.page_size
        self.page_delay_seconds = (
            config.page_delay_seconds if page_delay_seconds is None else page_delay_seconds
        )
        self.timeout = timeout or config.request_timeout_seconds
        self.base_url = f"https://{self.store_domain}/admin/api/{self.api_version}"

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "ShopifyClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "X-Shopify-Access-Token": self.access_token,
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("ShopifyClient used outside 'async with'")
        return self._client

    # =========================================================================
    # REQUESTS
    # =========================================================================

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self.http.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise ShopifyAPIError(f"Request to Shopify failed: {e}") from e

        if response.is_error:
            logger.error(
                "Shopify API error",
                store=self.store_domain,
                path=path,
                status_code=response.status_code,
            )
            raise ShopifyAPIError(
                f"Shopify API error {response.status_code} on {path}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            raise ShopifyAPIError(
                "Shopify returned a non-JSON body",
                status_code=response.status_code,
                body=response.text,
            ) from e

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """Single authenticated GET; non-2xx raises ShopifyAPIError."""
        return await self._send("GET", path, params=params)

    async def get_shop(self) -> Dict[str, Any]:
        """Shop metadata; doubles as a credentials check."""
        data = self._json(await self.get("/shop.json"))
        return data.get("shop", {})

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run a GraphQL Admin query and return its ``data``."""
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        data = self._json(await self._send("POST", "/graphql.json", json=payload))

        if data.get("errors"):
            messages = [e.get("message", str(e)) for e in data["errors"]]
            raise ShopifyAPIError(f"GraphQL errors: {', '.join(messages)}", status_code=200)

        return data.get("data") or {}

    # =========================================================================
    # PAGINATION
    # =========================================================================

    async def paginate(
        self,
        path: str,
        key: str,
        params: Optional[Dict[str, Any]] = None,
        max_records: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> FetchResult:
        """
        Follow ``rel="next"`` cursors until the collection is exhausted.

        Filters go on the first request only; the remote API rejects them
        alongside ``page_info``.

        Args:
            path: List endpoint, e.g. "/orders.json"
            key: Top-level JSON key holding the records
            params: Filters for the first page
            max_records: Stop (and truncate) once this many records are held
            max_pages: Stop after this many pages

        Returns:
            FetchResult; ``complete`` is False when a page after the first failed

        Raises:
            ShopifyAPIError: If the first page fails
        """
        result = FetchResult()
        cursor: Optional[str] = None

        while True:
            if result.pages and self.page_delay_seconds:
                await asyncio.sleep(self.page_delay_seconds)

            if cursor:
                page_params = {"limit": self.page_size, "page_info": cursor}
            else:
                page_params = {**(params or {}), "limit": self.page_size}

            try:
                response = await self.get(path, page_params)
                records = self._json(response).get(key) or []
            except ShopifyAPIError as e:
                if not result.pages:
                    raise
                result.complete = False
                result.error = str(e)
                logger.warning(
                    "Pagination failed, keeping fetched pages",
                    path=path,
                    pages=result.pages,
                    records=len(result.items),
                    error=str(e),
                )
                break

            result.pages += 1
            result.items.extend(records)
            cursor = parse_next_cursor(response.headers.get("link"))

            if max_records is not None and len(result.items) >= max_records:
                result.capped = bool(cursor) or len(result.items) > max_records
                del result.items[max_records:]
                break
            if not cursor:
                break
            if max_pages is not None and result.pages >= max_pages:
                result.capped = True
                break

        logger.info(
            "Fetched collection",
            store=self.store_domain,
            path=path,
            records=len(result.items),
            pages=result.pages,
            complete=result.complete,
            capped=result.capped,
        )
        return result

    async def fetch_products(self, max_records: Optional[int] = None) -> FetchResult:
        """Whole catalog, capped for memory and runtime."""
        if max_records is None:
            max_records = get_settings().shopify.max_product_records
        return await self.paginate("/products.json", "products", max_records=max_records)

    async def fetch_orders(
        self,
        created_at_min: Optional[datetime] = None,
        max_pages: Optional[int] = None,
        max_records: Optional[int] = None,
    ) -> FetchResult:
        """Orders of any status, optionally created on or after a timestamp."""
        params: Dict[str, Any] = {"status": "any"}
        if created_at_min is not None:
            params["created_at_min"] = created_at_min.isoformat()
        return await self.paginate(
            "/orders.json",
            "orders",
            params=params,
            max_records=max_records,
            max_pages=max_pages,
        )

    async def fetch_unit_costs(self, inventory_item_ids: Iterable[str]) -> Dict[str, Decimal]:
        """
        Unit cost per inventory item id, via GraphQL bulk field selection.

        Items without a recorded cost are absent from the result.
        """
        ids = sorted({str(i) for i in inventory_item_ids if i})
        costs: Dict[str, Decimal] = {}

        for i in range(0, len(ids), GRAPHQL_BATCH_SIZE):
            if i and self.page_delay_seconds:
                await asyncio.sleep(self.page_delay_seconds)

            batch = [f"gid://shopify/InventoryItem/{item_id}" for item_id in ids[i:i + GRAPHQL_BATCH_SIZE]]
            data = await self.graphql(UNIT_COST_QUERY, {"ids": batch})

            for node in data.get("nodes") or []:
                if not node or not node.get("unitCost"):
                    continue
                item_id = node["id"].rsplit("/", 1)[-1]
                costs[item_id] = Decimal(str(node["unitCost"]["amount"]))

        logger.info("Fetched unit costs", requested=len(ids), found=len(costs))
        return costs
