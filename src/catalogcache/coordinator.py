"""Request coordinator: tier ordering, coalescing and stale-while-revalidate.

For one query:

1. Memory tier. Fresh: return. Stale-but-servable: return and schedule one
   background revalidation.
2. On a memory miss, join the pending fetch for the key or register a new one.
   Registration happens before the first ``await``, so callers arriving in
   the same loop iteration always share one fetch.
3. The pending fetch consults the durable tier (eligible queries only) and
   promotes a hit into memory with its original timestamp. A stale durable
   hit is served and a revalidation is scheduled once the fetch settles.
4. Otherwise the edge cache is tried (eligible queries only), falling back to
   the origin on any edge failure. Results are validated, then written to
   memory and, if eligible, to the durable tier. A failure reaches every
   waiting caller and writes nothing.

Revalidations go through the same pending registry, so a foreground fetch and
a background refresh for one key never run at the same time. A revalidation
that keeps failing leaves the stale value in place until it expires; there is
no backoff.

Callers await fetches through ``asyncio.shield``: a cancelled caller does not
cancel a fetch other callers may be waiting on.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NamedTuple

import structlog
from pydantic import TypeAdapter, ValidationError

from catalogcache.errors import CatalogCacheError, ErrorCode
from catalogcache.freshness import freshness, system_clock
from catalogcache.models.cache import CacheEntry, Freshness
from catalogcache.pending import PendingFetches

if TYPE_CHECKING:
    from catalogcache.durable import DurableCache
    from catalogcache.freshness import Clock
    from catalogcache.memory import MemoryCache
    from catalogcache.models.edge import EdgeResponse
    from catalogcache.prefetch import AssetPrefetcher

log = structlog.get_logger()

OriginCall = Callable[[], Awaitable[Any]]
EdgeCall = Callable[[str | None], Awaitable["EdgeResponse"]]
AssetExtractor = Callable[[Any], Sequence[str]]

_MISSING = object()


@dataclass(frozen=True, slots=True)
class QueryPolicy:
    """Per-operation tier eligibility and TTL."""

    operation: str
    ttl: float
    adapter: TypeAdapter[Any]
    durable: bool = False
    edge: bool = False


@dataclass(frozen=True, slots=True)
class CatalogQuery:
    policy: QueryPolicy
    key: str
    origin: OriginCall
    edge: EdgeCall | None = None  # Receives the etag of the entry being refreshed
    assets: AssetExtractor | None = None


class _Resolution(NamedTuple):
    data: Any
    stale: bool


class RequestCoordinator:
    def __init__(
        self,
        memory: MemoryCache,
        durable: DurableCache | None = None,
        *,
        pending: PendingFetches | None = None,
        prefetcher: AssetPrefetcher | None = None,
        grace_seconds: float = 0.0,
        priority_count: int = 6,
        clock: Clock = system_clock,
    ) -> None:
        self._memory = memory
        self._durable = durable
        self._pending = pending if pending is not None else PendingFetches()
        self._prefetcher = prefetcher
        self._grace = grace_seconds
        self._priority_count = priority_count
        self._clock = clock
        self._background: set[asyncio.Task[Any]] = set()
        # Bumped by clear(); fetches started under an older generation never write.
        self._generation = 0

    @property
    def pending(self) -> PendingFetches:
        return self._pending

    async def get(self, query: CatalogQuery) -> Any:
        self._memory.sweep()
        entry = self._memory.get(query.key)
        if entry is not None:
            state = freshness(entry, self._clock(), self._grace)
            log.debug(
                "cache_hit", operation=query.policy.operation, tier="memory", freshness=state
            )
            if state is Freshness.STALE:
                self._revalidate(query)
            self._prefetch(query, entry.data)
            return entry.data

        task = self._pending.get(query.key)
        if task is None:
            log.debug("cache_miss", operation=query.policy.operation)
            task = self._pending.register(query.key, self._resolve(query, self._generation))
        else:
            log.debug("fetch_coalesced", operation=query.policy.operation)

        resolution: _Resolution = await asyncio.shield(task)
        if resolution.stale:
            self._revalidate(query)
        self._prefetch(query, resolution.data)
        return resolution.data

    def warm(self, query: CatalogQuery) -> None:
        """Run ``get`` in the background; failures are logged, never raised."""
        self._track(asyncio.get_running_loop().create_task(self.get(query)), "cache_warm_failed")

    def clear(self) -> None:
        """Empty the memory tier and forget in-flight registrations.

        Fetches already running complete for the callers awaiting them, but
        their results are not written back.
        """
        self._generation += 1
        self._memory.clear()
        self._pending.forget_all()

    async def wait_background(self) -> None:
        """Wait for scheduled revalidations and warm-ups to settle."""
        while self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ------------------------------------------------------------------
    # Fetch pipeline
    # ------------------------------------------------------------------

    async def _resolve(self, query: CatalogQuery, generation: int) -> _Resolution:
        if query.policy.durable and self._durable is not None:
            entry = await self._durable.get(query.key, query.policy.adapter)
            if entry is not None:
                state = freshness(entry, self._clock(), self._grace)
                if state is not Freshness.EXPIRED:
                    if generation == self._generation:
                        self._memory.put(query.key, entry)
                    log.debug(
                        "cache_hit",
                        operation=query.policy.operation,
                        tier="durable",
                        freshness=state,
                    )
                    return _Resolution(entry.data, stale=state is Freshness.STALE)

        return _Resolution(await self._fetch_remote(query, generation), stale=False)

    async def _refresh(self, query: CatalogQuery, generation: int) -> _Resolution:
        log.debug("revalidation_started", operation=query.policy.operation)
        return _Resolution(await self._fetch_remote(query, generation), stale=False)

    async def _fetch_remote(self, query: CatalogQuery, generation: int) -> Any:
        started_at = self._clock()
        current = self._memory.peek(query.key)
        data: Any = _MISSING
        etag: str | None = None

        if query.edge is not None and query.policy.edge:
            data, etag = await self._fetch_edge(query, current)

        if data is _MISSING:
            raw = await query.origin()
            try:
                data = query.policy.adapter.validate_python(raw)
            except ValidationError as exc:
                raise CatalogCacheError(
                    code=ErrorCode.ORIGIN_INVALID_RESPONSE,
                    message=f"Catalog returned malformed records for {query.policy.operation}",
                    recoverable=True,
                ) from exc

        await self._store(query, data, etag, started_at, generation)
        return data

    async def _fetch_edge(
        self, query: CatalogQuery, current: CacheEntry | None
    ) -> tuple[Any, str | None]:
        assert query.edge is not None
        try:
            response = await query.edge(current.etag if current is not None else None)
        except CatalogCacheError as exc:
            log.info(
                "edge_cache_fallback", operation=query.policy.operation, error=exc.message
            )
            return _MISSING, None

        if response.not_modified:
            if current is None:
                return _MISSING, None
            return current.data, response.etag

        try:
            return query.policy.adapter.validate_python(response.data), response.etag
        except ValidationError:
            log.warning("edge_cache_invalid_payload", operation=query.policy.operation)
            return _MISSING, None

    async def _store(
        self,
        query: CatalogQuery,
        data: Any,
        etag: str | None,
        started_at: float,
        generation: int,
    ) -> None:
        if generation != self._generation:
            log.debug("cache_write_skipped", operation=query.policy.operation, reason="cleared")
            return
        existing = self._memory.peek(query.key)
        if existing is not None and existing.timestamp > started_at:
            log.debug(
                "cache_write_skipped", operation=query.policy.operation, reason="superseded"
            )
            return

        entry = CacheEntry(data=data, timestamp=self._clock(), ttl=query.policy.ttl, etag=etag)
        self._memory.put(query.key, entry)
        if query.policy.durable and self._durable is not None:
            await self._durable.write(
                query.key,
                entry,
                query.policy.adapter,
                still_current=lambda: generation == self._generation,
            )

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _revalidate(self, query: CatalogQuery) -> None:
        if query.key in self._pending:
            return
        task = self._pending.register(query.key, self._refresh(query, self._generation))
        self._track(task, "revalidation_failed")

    def _track(self, task: asyncio.Task[Any], failure_event: str) -> None:
        self._background.add(task)

        def done(t: asyncio.Task[Any]) -> None:
            self._background.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                log.warning(failure_event, error=str(exc), error_type=type(exc).__name__)

        task.add_done_callback(done)

    def _prefetch(self, query: CatalogQuery, data: Any) -> None:
        if self._prefetcher is None or query.assets is None:
            return
        urls = query.assets(data)
        if urls:
            self._prefetcher.schedule(urls, self._priority_count)
