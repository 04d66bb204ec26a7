from __future__ import annotations

from catalogcache.config import Settings
from catalogcache.errors import CatalogCacheError, ErrorCode
from catalogcache.service import CatalogDataService
from catalogcache.state import AppState, open_catalog

__all__ = [
    "AppState",
    "CatalogCacheError",
    "CatalogDataService",
    "ErrorCode",
    "Settings",
    "open_catalog",
]
