"""Runtime wiring.

``open_catalog`` builds one instance of every tier from ``Settings`` and
yields them in an ``AppState``. Nothing here is a module-level singleton:
tests and embedding applications construct as many isolated states as they
need.
"""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import httpx
import structlog

from catalogcache.config import Settings
from catalogcache.coordinator import RequestCoordinator
from catalogcache.durable import DurableCache
from catalogcache.edge import EdgeCacheClient, edge_cache_enabled
from catalogcache.errors import CatalogCacheError, ErrorCode
from catalogcache.freshness import system_clock
from catalogcache.memory import MemoryCache
from catalogcache.network import NetworkQualityEstimator, settings_signal
from catalogcache.origin import PostgrestCatalogSource
from catalogcache.pending import PendingFetches
from catalogcache.prefetch import AssetPrefetcher
from catalogcache.service import CatalogDataService
from catalogcache.transport import build_http_client

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from catalogcache.freshness import Clock
    from catalogcache.origin import CatalogSource

log = structlog.get_logger()


@dataclass
class AppState:
    settings: Settings
    http_client: httpx.AsyncClient
    memory: MemoryCache
    durable: DurableCache
    pending: PendingFetches
    coordinator: RequestCoordinator
    prefetcher: AssetPrefetcher
    estimator: NetworkQualityEstimator
    service: CatalogDataService
    edge: EdgeCacheClient | None = None


def _build_origin(settings: Settings, client: httpx.AsyncClient) -> CatalogSource:
    if not settings.origin.url or not settings.origin.api_key:
        raise CatalogCacheError(
            code=ErrorCode.NOT_CONFIGURED,
            message="origin.url and origin.api_key must be set",
            suggestion="Set CATALOGCACHE__ORIGIN__URL and CATALOGCACHE__ORIGIN__API_KEY",
        )
    return PostgrestCatalogSource(
        client,
        settings.origin.url,
        settings.origin.api_key,
        schema_name=settings.origin.schema_name,
    )


@contextlib.asynccontextmanager
async def open_catalog(
    settings: Settings | None = None,
    *,
    origin: CatalogSource | None = None,
    http_client: httpx.AsyncClient | None = None,
    environ: Mapping[str, str] | None = None,
    clock: Clock = system_clock,
) -> AsyncIterator[AppState]:
    """Open the durable store, build every tier, and tear everything down on exit.

    ``origin`` and ``http_client`` may be injected; otherwise they are built
    from settings. The edge tier is enabled or disabled here, once.
    """
    settings = settings or Settings()
    cache_settings = settings.cache

    db_path = cache_settings.db_path
    if db_path != ":memory:":
        db_path = str(Path(db_path).expanduser())
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async with contextlib.AsyncExitStack() as stack:
        if http_client is None:
            http_client = await stack.enter_async_context(
                build_http_client(timeout=settings.origin.timeout_seconds)
            )
        db = await stack.enter_async_context(aiosqlite.connect(db_path))

        durable = DurableCache(
            db,
            version=cache_settings.version,
            key_prefix=cache_settings.key_prefix,
            grace_seconds=cache_settings.grace_seconds,
            max_entry_bytes=cache_settings.max_entry_bytes,
            max_total_bytes=cache_settings.max_total_bytes,
            clock=clock,
        )
        await durable.init_db()
        await durable.sweep_if_due(cache_settings.sweep_interval_hours)

        edge = None
        if edge_cache_enabled(settings.edge, environ):
            assert settings.edge.base_url is not None
            edge = EdgeCacheClient(
                http_client,
                settings.edge.base_url,
                function=settings.edge.function,
                timeout=settings.edge.timeout_seconds,
            )
        log.info("catalog_cache_starting", db_path=db_path, edge_enabled=edge is not None)

        memory = MemoryCache(grace_seconds=cache_settings.grace_seconds, clock=clock)
        pending = PendingFetches()
        prefetcher = AssetPrefetcher(
            http_client,
            concurrency=settings.prefetch.concurrency,
            timeout=settings.prefetch.timeout_seconds,
        )
        estimator = NetworkQualityEstimator(
            settings_signal(settings.network),
            refresh_interval=settings.network.refresh_seconds,
        )
        coordinator = RequestCoordinator(
            memory,
            durable,
            pending=pending,
            prefetcher=prefetcher,
            grace_seconds=cache_settings.grace_seconds,
            priority_count=settings.prefetch.priority_count,
            clock=clock,
        )
        service = CatalogDataService(
            coordinator,
            origin or _build_origin(settings, http_client),
            cache_settings=cache_settings,
            memory=memory,
            durable=durable,
            edge=edge,
            prefetcher=prefetcher,
            estimator=estimator,
            priority_count=settings.prefetch.priority_count,
        )

        state = AppState(
            settings=settings,
            http_client=http_client,
            memory=memory,
            durable=durable,
            pending=pending,
            coordinator=coordinator,
            prefetcher=prefetcher,
            estimator=estimator,
            service=service,
            edge=edge,
        )
        try:
            yield state
        finally:
            await service.aclose()
            log.info("catalog_cache_stopped")
