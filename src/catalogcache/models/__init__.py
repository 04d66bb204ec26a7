from __future__ import annotations

from catalogcache.models.cache import (
    CacheEntry,
    CacheStats,
    DurableStats,
    Freshness,
    Ignorable,
    PrefetchStats,
    TierResult,
)
from catalogcache.models.catalog import Product, ProductListing, ProductSummary
from catalogcache.models.edge import EdgeEnvelope, EdgeResponse
from catalogcache.models.queries import (
    ListProductsInput,
    ProductDetailInput,
    ProductSummariesInput,
)

__all__ = [
    # catalog
    "Product",
    "ProductListing",
    "ProductSummary",
    # cache
    "CacheEntry",
    "CacheStats",
    "DurableStats",
    "Freshness",
    "Ignorable",
    "PrefetchStats",
    "TierResult",
    # edge
    "EdgeEnvelope",
    "EdgeResponse",
    # queries
    "ListProductsInput",
    "ProductDetailInput",
    "ProductSummariesInput",
]
