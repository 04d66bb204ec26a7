"""The authoritative catalog store.

``CatalogSource`` is the read-only query interface the cache sits in front
of. ``PostgrestCatalogSource`` implements it against a PostgREST endpoint
(``<url>/rest/v1/products``). Row visibility is enforced server-side; list
and category queries additionally filter on ``is_available``. Listings are
ordered newest first.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import httpx
import structlog

from catalogcache.errors import CatalogCacheError, ErrorCode

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

log = structlog.get_logger()

LIST_FIELDS = "id,name,price,image_url,category,stock_quantity,delivery_charge,is_available"
SUMMARY_FIELDS = "id,name,price,image_url,category"


class CatalogSource(Protocol):
    async def list_products(
        self, *, category: str | None, search: str | None, limit: int, offset: int
    ) -> list[dict[str, Any]]: ...

    async def get_product_detail(self, product_id: str) -> dict[str, Any] | None: ...

    async def get_products_by_ids(self, product_ids: Sequence[str]) -> list[dict[str, Any]]: ...

    async def list_categories(self) -> list[str]: ...


def _quote(value: str) -> str:
    """Quote a value for a PostgREST filter so commas and parentheses stay literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def search_filter(search: str) -> str:
    pattern = _quote(f"*{search}*")
    return f"(name.ilike.{pattern},description.ilike.{pattern},category.ilike.{pattern})"


class PostgrestCatalogSource:
    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        api_key: str,
        *,
        schema_name: str = "public",
    ) -> None:
        self._client = client
        self._endpoint = f"{url.rstrip('/')}/rest/v1/products"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
            "Accept-Profile": schema_name,
        }

    async def _select(self, params: Mapping[str, str]) -> list[dict[str, Any]]:
        try:
            response = await self._client.get(self._endpoint, params=params, headers=self._headers)
        except httpx.HTTPError as exc:
            raise CatalogCacheError(
                code=ErrorCode.ORIGIN_UNAVAILABLE,
                message=f"Catalog request failed: {exc}",
                recoverable=True,
            ) from exc

        if not response.is_success:
            log.warning("origin_request_failed", status_code=response.status_code)
            raise CatalogCacheError(
                code=ErrorCode.ORIGIN_UNAVAILABLE,
                message=f"Catalog returned HTTP {response.status_code}",
                recoverable=response.status_code >= 500 or response.status_code == 429,
            )

        try:
            rows = response.json()
        except ValueError as exc:
            raise CatalogCacheError(
                code=ErrorCode.ORIGIN_INVALID_RESPONSE,
                message="Catalog returned a body that is not JSON",
                recoverable=True,
            ) from exc
        if not isinstance(rows, list):
            raise CatalogCacheError(
                code=ErrorCode.ORIGIN_INVALID_RESPONSE,
                message="Catalog returned a non-list body",
                recoverable=True,
            )
        return rows

    async def list_products(
        self, *, category: str | None, search: str | None, limit: int, offset: int
    ) -> list[dict[str, Any]]:
        params = {
            "select": LIST_FIELDS,
            "is_available": "eq.true",
            "order": "created_at.desc",
            "offset": str(offset),
            "limit": str(limit),
        }
        if category:
            params["category"] = f"eq.{_quote(category)}"
        if search:
            params["or"] = search_filter(search)
        return await self._select(params)

    async def get_product_detail(self, product_id: str) -> dict[str, Any] | None:
        rows = await self._select({"select": "*", "id": f"eq.{product_id}", "limit": "1"})
        return rows[0] if rows else None

    async def get_products_by_ids(self, product_ids: Sequence[str]) -> list[dict[str, Any]]:
        if not product_ids:
            return []
        ids = ",".join(product_ids)
        return await self._select({"select": SUMMARY_FIELDS, "id": f"in.({ids})"})

    async def list_categories(self) -> list[str]:
        rows = await self._select({"select": "category", "is_available": "eq.true"})
        return sorted({row["category"] for row in rows if row.get("category")})
