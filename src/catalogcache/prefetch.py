"""Background warm-up of media referenced by catalog results.

Prefetching is best-effort: a failed request is logged at debug level and
forgotten, because the real asset load is retried naturally when rendered.
Requests go out in windows of ``concurrency`` so that warm-up traffic never
crowds out the primary data fetch on a slow connection.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING

import httpx
import structlog

from catalogcache.models.cache import PrefetchStats

if TYPE_CHECKING:
    from collections.abc import Sequence

log = structlog.get_logger()


class AssetPrefetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        concurrency: int = 3,
        timeout: float | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._client = client
        self._timeout = httpx.USE_CLIENT_DEFAULT if timeout is None else timeout
        self._concurrency = concurrency
        self._high: deque[str] = deque()
        self._low: deque[str] = deque()
        self._queued: set[str] = set()
        self._prefetched: set[str] = set()
        # Bumped by clear(); requests started before it do not record their URL.
        self._epoch = 0
        self._worker: asyncio.Task[None] | None = None

    def schedule(self, urls: Sequence[str], priority_count: int) -> None:
        """Queue ``urls``; the first ``priority_count`` go ahead of everything else.

        Never blocks. Must be called from a running event loop.
        """
        added = 0
        for index, url in enumerate(urls):
            if not url or url in self._queued or url in self._prefetched:
                continue
            (self._high if index < priority_count else self._low).append(url)
            self._queued.add(url)
            added += 1

        if added and (self._worker is None or self._worker.done()):
            self._worker = asyncio.get_running_loop().create_task(
                self._drain(), name="asset-prefetch"
            )

    async def _drain(self) -> None:
        while self._high or self._low:
            batch: list[str] = []
            while len(batch) < self._concurrency and (self._high or self._low):
                batch.append(self._high.popleft() if self._high else self._low.popleft())
            await asyncio.gather(*(self._prefetch_one(url) for url in batch))

    async def _prefetch_one(self, url: str) -> None:
        epoch = self._epoch
        try:
            response = await self._client.get(url, timeout=self._timeout)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            log.debug("asset_prefetch_failed", url=url, error=str(exc))
        else:
            if epoch == self._epoch:
                self._prefetched.add(url)
        finally:
            self._queued.discard(url)

    async def wait_idle(self) -> None:
        """Wait until the queue is drained."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    def is_prefetched(self, url: str) -> bool:
        return url in self._prefetched

    def stats(self) -> PrefetchStats:
        return PrefetchStats(
            prefetched=len(self._prefetched), queued=len(self._high) + len(self._low)
        )

    def clear(self) -> None:
        """Forget prefetched URLs and drop everything still queued."""
        self._epoch += 1
        self._prefetched.clear()
        for url in (*self._high, *self._low):
            self._queued.discard(url)
        self._high.clear()
        self._low.clear()
