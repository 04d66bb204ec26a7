"""Client for the shared edge cache function.

The edge function fronts the catalog with its own server-side cache and
cache-control headers, shared across many clients. To the request
coordinator it is just one more tier: every failure raises
``CatalogCacheError(EDGE_CACHE_UNAVAILABLE)`` and the caller falls back to the
origin. No retries happen here.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from pydantic import ValidationError

from catalogcache.errors import CatalogCacheError, ErrorCode
from catalogcache.models.edge import EdgeEnvelope, EdgeResponse

if TYPE_CHECKING:
    from collections.abc import Mapping

    from catalogcache.config import EdgeSettings

log = structlog.get_logger()

ACTION_PRODUCTS = "products"
ACTION_CATEGORIES = "categories"
ACTION_HEALTH = "health"


def edge_cache_enabled(settings: EdgeSettings, environ: Mapping[str, str] | None = None) -> bool:
    """Decide once per process whether the edge tier is used."""
    if settings.mode == "off" or not settings.base_url:
        return False
    if settings.mode == "on":
        return True
    env = os.environ if environ is None else environ
    return env.get(settings.context_env, "").lower() == "production"


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class EdgeCacheClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        *,
        function: str = "cache-products",
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self._timeout = httpx.USE_CLIENT_DEFAULT if timeout is None else timeout
        self._url = f"{base_url.rstrip('/')}/{function}"

    async def fetch(
        self,
        action: str,
        params: Mapping[str, Any] | None = None,
        *,
        etag: str | None = None,
    ) -> EdgeResponse:
        """Run one edge query.

        With ``etag`` set the request is conditional; a 304 comes back as
        ``EdgeResponse(not_modified=True)``.
        """
        query = {"action": action}
        for name, value in (params or {}).items():
            if value is not None:
                query[name] = _query_value(value)
        headers = {"Accept": "application/json"}
        if etag:
            headers["If-None-Match"] = etag

        try:
            response = await self._client.get(
                self._url, params=query, headers=headers, timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            raise CatalogCacheError(
                code=ErrorCode.EDGE_CACHE_UNAVAILABLE,
                message=f"Edge cache request failed: {exc}",
                recoverable=True,
            ) from exc

        if response.status_code == 304:
            return EdgeResponse(etag=response.headers.get("etag", etag), not_modified=True)

        if not response.is_success:
            raise CatalogCacheError(
                code=ErrorCode.EDGE_CACHE_UNAVAILABLE,
                message=f"Edge cache returned HTTP {response.status_code} for action {action!r}",
                recoverable=True,
            )

        try:
            envelope = EdgeEnvelope.model_validate_json(response.content)
        except ValidationError as exc:
            raise CatalogCacheError(
                code=ErrorCode.EDGE_CACHE_UNAVAILABLE,
                message=f"Edge cache returned a malformed envelope for action {action!r}",
                recoverable=True,
            ) from exc

        if not envelope.success or envelope.data is None:
            raise CatalogCacheError(
                code=ErrorCode.EDGE_CACHE_UNAVAILABLE,
                message=envelope.error or f"Edge cache could not serve action {action!r}",
                recoverable=True,
            )

        cache_status = response.headers.get("x-cache-status")
        log.debug("edge_cache_response", action=action, cache_status=cache_status)
        return EdgeResponse(
            data=envelope.data,
            etag=response.headers.get("etag"),
            cache_status=cache_status,
        )

    async def list_products(
        self,
        *,
        category: str | None = None,
        search: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
        etag: str | None = None,
    ) -> EdgeResponse:
        params = {"category": category, "search": search, "limit": limit, "offset": offset}
        return await self.fetch(ACTION_PRODUCTS, params, etag=etag)

    async def list_categories(self, *, etag: str | None = None) -> EdgeResponse:
        return await self.fetch(ACTION_CATEGORIES, etag=etag)

    async def health(self) -> dict[str, Any]:
        """Raw health payload (status, cache size, backend configuration)."""
        try:
            response = await self._client.get(
                self._url, params={"action": ACTION_HEALTH}, timeout=self._timeout
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise CatalogCacheError(
                code=ErrorCode.EDGE_CACHE_UNAVAILABLE,
                message=f"Edge cache health check failed: {exc}",
                recoverable=True,
            ) from exc
