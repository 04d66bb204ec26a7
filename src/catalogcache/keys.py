from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

LIST_PRODUCTS = "products_list"
PRODUCT_DETAIL = "product_detail"
PRODUCT_SUMMARIES = "products_summary"
CATEGORIES = "product_categories"


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def cache_key(operation: str, params: Mapping[str, Any] | None = None) -> str:
    """Build the cache key for a query.

    ``params`` must already be resolved: defaults filled in and values
    normalized, so that "unset" and "explicitly default" cannot produce two
    different keys for the same logical query. Every resolved field is kept,
    ``None`` included.
    """
    if not params:
        return operation
    return f"{operation}:{canonical_json(dict(params))}"
