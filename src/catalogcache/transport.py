from __future__ import annotations

import httpx

USER_AGENT = "catalogcache/0.1"


def build_http_client(*, timeout: float = 15.0) -> httpx.AsyncClient:
    """Shared AsyncClient for the origin, the edge cache and asset prefetching.

    Timeouts live here rather than in the request coordinator.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
    )
