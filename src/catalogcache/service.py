"""Typed read API over the catalog cache.

Each operation validates its parameters first (an invalid query never costs
a round trip), resolves defaults so that equal logical queries share a cache
key, and hands a ``CatalogQuery`` to the request coordinator with a fixed
tier and TTL policy:

==================  ==========  =======  ======  =====================
operation           memory      durable  edge    TTL
==================  ==========  =======  ======  =====================
list_products       yes         yes      yes     cache.list_ttl
list_categories     yes         yes      yes     cache.category_ttl
get_product         yes         no       no      cache.detail_ttl
get_product_summ.   yes         no       no      cache.detail_ttl
==================  ==========  =======  ======  =====================
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from catalogcache import keys
from catalogcache.coordinator import CatalogQuery, QueryPolicy
from catalogcache.errors import CatalogCacheError, ErrorCode
from catalogcache.models.cache import CacheStats, DurableStats, PrefetchStats
from catalogcache.models.catalog import Product, ProductListing, ProductSummary
from catalogcache.models.queries import (
    ListProductsInput,
    ProductDetailInput,
    ProductSummariesInput,
)
from catalogcache.network import DEFAULT_PROFILE

if TYPE_CHECKING:
    from collections.abc import Sequence

    from catalogcache.config import CacheSettings
    from catalogcache.coordinator import RequestCoordinator
    from catalogcache.durable import DurableCache
    from catalogcache.edge import EdgeCacheClient
    from catalogcache.memory import MemoryCache
    from catalogcache.network import NetworkQualityEstimator, QualityProfile
    from catalogcache.origin import CatalogSource
    from catalogcache.prefetch import AssetPrefetcher

log = structlog.get_logger()

_LISTINGS = TypeAdapter(list[ProductListing])
_SUMMARIES = TypeAdapter(list[ProductSummary])
_DETAIL = TypeAdapter(Product | None)
_CATEGORIES = TypeAdapter(list[str])

M = TypeVar("M", bound=BaseModel)


def _validate(model: type[M], **params: Any) -> M:
    try:
        return model(**params)
    except ValidationError as exc:
        message = "; ".join(str(error["msg"]) for error in exc.errors())
        raise CatalogCacheError(
            code=ErrorCode.INVALID_INPUT, message=message, recoverable=False
        ) from exc


class CatalogDataService:
    def __init__(
        self,
        coordinator: RequestCoordinator,
        origin: CatalogSource,
        *,
        cache_settings: CacheSettings,
        memory: MemoryCache,
        durable: DurableCache | None = None,
        edge: EdgeCacheClient | None = None,
        prefetcher: AssetPrefetcher | None = None,
        estimator: NetworkQualityEstimator | None = None,
        priority_count: int = 6,
    ) -> None:
        self._coordinator = coordinator
        self._origin = origin
        self._memory = memory
        self._durable = durable
        self._edge = edge
        self._prefetcher = prefetcher
        self._estimator = estimator
        self._priority_count = priority_count

        edge_enabled = edge is not None
        self._list_policy = QueryPolicy(
            operation=keys.LIST_PRODUCTS,
            ttl=cache_settings.list_ttl_seconds,
            adapter=_LISTINGS,
            durable=True,
            edge=edge_enabled,
        )
        self._categories_policy = QueryPolicy(
            operation=keys.CATEGORIES,
            ttl=cache_settings.category_ttl_seconds,
            adapter=_CATEGORIES,
            durable=True,
            edge=edge_enabled,
        )
        self._detail_policy = QueryPolicy(
            operation=keys.PRODUCT_DETAIL,
            ttl=cache_settings.detail_ttl_seconds,
            adapter=_DETAIL,
        )
        self._summaries_policy = QueryPolicy(
            operation=keys.PRODUCT_SUMMARIES,
            ttl=cache_settings.detail_ttl_seconds,
            adapter=_SUMMARIES,
        )

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def list_products(
        self,
        *,
        category: str | None = None,
        search: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ProductListing]:
        """Visible products, newest first.

        ``limit`` defaults to the batch size suited to the current connection.
        """
        if limit is None:
            limit = self.quality_profile().batch_size
        return await self._coordinator.get(
            self._list_query(category=category, search=search, limit=limit, offset=offset)
        )

    async def get_product(self, product_id: str) -> Product | None:
        params = _validate(ProductDetailInput, product_id=product_id)
        pid = params.product_id
        query = CatalogQuery(
            policy=self._detail_policy,
            key=keys.cache_key(keys.PRODUCT_DETAIL, {"id": pid}),
            origin=lambda: self._origin.get_product_detail(pid),
            assets=self._detail_assets,
        )
        return await self._coordinator.get(query)

    async def get_product_summaries(self, product_ids: Sequence[str]) -> list[ProductSummary]:
        """Minimal records for cart and order views, in no particular order."""
        if not product_ids:
            return []
        params = _validate(ProductSummariesInput, product_ids=list(product_ids))
        ids = params.product_ids
        query = CatalogQuery(
            policy=self._summaries_policy,
            key=keys.cache_key(keys.PRODUCT_SUMMARIES, {"ids": ids}),
            origin=lambda: self._origin.get_products_by_ids(ids),
        )
        return await self._coordinator.get(query)

    async def list_categories(self) -> list[str]:
        edge = self._edge
        query = CatalogQuery(
            policy=self._categories_policy,
            key=keys.cache_key(keys.CATEGORIES),
            origin=self._origin.list_categories,
            edge=(lambda etag: edge.list_categories(etag=etag)) if edge is not None else None,
        )
        return await self._coordinator.get(query)

    def prefetch_products(self, *, category: str | None = None, limit: int | None = None) -> None:
        """Warm the cache for a listing in the background.

        Invalid parameters and fetch failures are logged, never raised. Must be
        called from a running event loop.
        """
        if limit is None:
            limit = self.quality_profile().batch_size
        try:
            query = self._list_query(category=category, search=None, limit=limit)
        except CatalogCacheError as exc:
            log.warning("cache_warm_rejected", error=exc.message)
            return
        self._coordinator.warm(query)

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    async def clear_cache(self) -> None:
        """Drop every cached result in every tier and forget prefetched assets."""
        self._coordinator.clear()
        if self._prefetcher is not None:
            self._prefetcher.clear()
        if self._durable is not None:
            await self._durable.clear()
        log.info("catalog_cache_cleared")

    async def cache_stats(self) -> CacheStats:
        self._memory.sweep()
        durable = (
            await self._durable.stats()
            if self._durable is not None
            else DurableStats(count=0, size_bytes=0)
        )
        prefetch = (
            self._prefetcher.stats()
            if self._prefetcher is not None
            else PrefetchStats(prefetched=0, queued=0)
        )
        return CacheStats(
            memory_entries=len(self._memory),
            memory_keys=self._memory.keys(),
            durable=durable,
            prefetch=prefetch,
        )

    def quality_profile(self) -> QualityProfile:
        if self._estimator is None:
            return DEFAULT_PROFILE
        return self._estimator.estimate()

    async def aclose(self) -> None:
        """Let background revalidations and prefetches finish."""
        await self._coordinator.wait_background()
        if self._prefetcher is not None:
            await self._prefetcher.wait_idle()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _list_query(
        self, *, category: str | None, search: str | None, limit: int, offset: int = 0
    ) -> CatalogQuery:
        params = _validate(
            ListProductsInput, category=category, search=search, limit=limit, offset=offset
        )
        edge = self._edge
        return CatalogQuery(
            policy=self._list_policy,
            key=keys.cache_key(keys.LIST_PRODUCTS, params.model_dump()),
            origin=lambda: self._origin.list_products(
                category=params.category,
                search=params.search,
                limit=params.limit,
                offset=params.offset,
            ),
            edge=(
                (
                    lambda etag: edge.list_products(
                        category=params.category,
                        search=params.search,
                        limit=params.limit,
                        offset=params.offset,
                        etag=etag,
                    )
                )
                if edge is not None
                else None
            ),
            assets=self._listing_assets,
        )

    def _listing_assets(self, products: list[ProductListing]) -> list[str]:
        urls = [product.image_url for product in products if product.image_url]
        if not self.quality_profile().allow_high_bandwidth_assets:
            # Constrained or data-saver connections only warm what is on screen first.
            urls = urls[: self._priority_count]
        return urls

    def _detail_assets(self, product: Product | None) -> list[str]:
        if product is None or not product.image_url:
            return []
        return [product.image_url]
