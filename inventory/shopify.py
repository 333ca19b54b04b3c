# inventory/shopify.py
# Shopify Admin GraphQL: постраничная выгрузка вариантов с остатками.
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from inventory.index import RawVariant

logger = logging.getLogger("inventory.shopify")


# =======================
# GraphQL
# =======================

# Проверка доступа (без полей остатков)
SANITY_GQL = """
  {
    shop { name }
    productVariants(first: 5) {
      edges { node { id sku title product { title } } }
    }
  }
"""

VARIANTS_PAGE_GQL = """
  query ($first: Int!, $after: String) {
    productVariants(first: $first, after: $after) {
      pageInfo { hasNextPage endCursor }
      edges {
        node {
          id
          title
          sku
          inventoryQuantity
          product { title handle }
        }
      }
    }
  }
"""

# Диагностика: тот же проход, но без inventoryQuantity
VARIANTS_PAGE_NOINV_GQL = """
  query ($first: Int!, $after: String) {
    productVariants(first: $first, after: $after) {
      pageInfo { hasNextPage endCursor }
      edges { node { id sku } }
    }
  }
"""


class ShopifyError(RuntimeError):
    """Сбой транспорта: не-2xx ответ, errors в теле или битый payload."""

    def __init__(self, message: str, status: Optional[int] = None, errors: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.errors = errors


@dataclass(frozen=True)
class VariantPage:
    records: List[RawVariant]
    has_more: bool
    next_cursor: Optional[str]


def _to_int(v: Any) -> int:
    try:
        return int(v or 0)
    except (TypeError, ValueError):
        return 0


def _variant_from_node(node: Dict[str, Any]) -> RawVariant:
    product = node.get("product") or {}
    return RawVariant(
        sku=str(node.get("sku") or "").strip(),
        title=str(node.get("title") or ""),
        product_title=str(product.get("title") or ""),
        available=_to_int(node.get("inventoryQuantity")),
    )


def _variants_connection(payload: Dict[str, Any]) -> Dict[str, Any]:
    pv = (payload.get("data") or {}).get("productVariants")
    if not isinstance(pv, dict):
        raise ShopifyError("Shopify response has no productVariants")
    return pv


class ShopifyClient:
    def __init__(
        self,
        domain: str,
        access_token: str,
        api_version: str = "2025-10",
        page_size: int = 250,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._domain = domain
        self._access_token = access_token
        self._api_version = api_version
        self._page_size = page_size
        self._timeout = timeout
        self._transport = transport
        self._lock = asyncio.Lock()
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings) -> "ShopifyClient":
        return cls(
            domain=settings.shopify_domain,
            access_token=settings.shopify_admin_token,
            api_version=settings.shopify_api_version,
            page_size=settings.shopify_page_size,
            timeout=settings.shopify_http_timeout,
        )

    @property
    def endpoint(self) -> str:
        return f"https://{self._domain}/admin/api/{self._api_version}/graphql.json"

    # ---------- httpx client (lazy, shared) ----------

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client and not self._client.is_closed:
            return self._client

        async with self._lock:
            if self._client and not self._client.is_closed:
                return self._client

            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                headers={
                    "X-Shopify-Access-Token": self._access_token,
                    "Content-Type": "application/json",
                    "Shopify-API-Version": self._api_version,
                },
            )
            return self._client

    async def aclose(self) -> None:
        async with self._lock:
            if self._client and not self._client.is_closed:
                await self._client.aclose()
            self._client = None

    # ---------- raw GraphQL ----------

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            resp = await client.post(self.endpoint, json={"query": query, "variables": variables or {}})
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ShopifyError(f"Shopify request failed: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise ShopifyError(f"Shopify HTTP {resp.status_code}: {resp.text}", status=resp.status_code)

        try:
            payload = resp.json()
        except ValueError as e:
            raise ShopifyError("Shopify returned non-JSON body", status=resp.status_code) from e

        if not isinstance(payload, dict):
            raise ShopifyError("Shopify returned unexpected payload", status=resp.status_code)

        errors = payload.get("errors")
        if errors:
            logger.error("Shopify GraphQL errors: %s", errors)
            raise ShopifyError("Shopify GraphQL returned errors", status=resp.status_code, errors=errors)

        data_errors = (payload.get("data") or {}).get("errors")
        if data_errors:
            logger.error("Shopify data.errors: %s", data_errors)
            raise ShopifyError("Shopify GraphQL returned data.errors", status=resp.status_code, errors=data_errors)

        return payload

    # ---------- pagination ----------

    async def fetch_variants_page(self, cursor: Optional[str] = None) -> VariantPage:
        payload = await self.graphql(VARIANTS_PAGE_GQL, {"first": self._page_size, "after": cursor})
        pv = _variants_connection(payload)

        records = [
            _variant_from_node(edge.get("node") or {})
            for edge in (pv.get("edges") or [])
        ]
        page_info = pv.get("pageInfo") or {}
        has_more = bool(page_info.get("hasNextPage"))
        return VariantPage(
            records=records,
            has_more=has_more,
            next_cursor=page_info.get("endCursor") if has_more else None,
        )

    async def iter_variant_pages(self) -> AsyncIterator[List[RawVariant]]:
        cursor: Optional[str] = None
        while True:
            page = await self.fetch_variants_page(cursor)
            yield page.records
            if not page.has_more:
                break
            cursor = page.next_cursor

    # ---------- diagnostics ----------

    async def sanity_check(self) -> bool:
        try:
            payload = await self.graphql(SANITY_GQL)
        except ShopifyError:
            logger.exception("Shopify sanity check FAILED")
            return False

        data = payload.get("data") or {}
        shop_name = (data.get("shop") or {}).get("name") or "(unknown shop)"
        edges = (data.get("productVariants") or {}).get("edges") or []
        sample = [((e.get("node") or {}).get("sku") or "(empty)") for e in edges]
        logger.info("Shopify sanity: shop=%r, sample SKUs: %s", shop_name, " | ".join(sample))
        return True

    async def count_variants_without_inventory(self) -> int:
        """
        Считает варианты запросом без inventoryQuantity.
        Нужен после упавшей сборки: видно, ломается ли именно поле остатков.
        """
        count = 0
        cursor: Optional[str] = None
        try:
            while True:
                payload = await self.graphql(VARIANTS_PAGE_NOINV_GQL, {"first": self._page_size, "after": cursor})
                pv = _variants_connection(payload)
                count += len(pv.get("edges") or [])
                page_info = pv.get("pageInfo") or {}
                if not page_info.get("hasNextPage"):
                    break
                cursor = page_info.get("endCursor")
        except ShopifyError:
            logger.exception("Diagnostic (no inventory) failed")
            return count

        logger.info("Diagnostic: total variants WITHOUT inventory fields = %d", count)
        return count
