"""Process-lifetime key → entry map.

Used from a single asyncio event loop: no method awaits, so reads and writes
never interleave and no lock is needed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from catalogcache.freshness import is_servable, system_clock
from catalogcache.models.cache import CacheEntry

if TYPE_CHECKING:
    from catalogcache.freshness import Clock

log = structlog.get_logger()


class MemoryCache:
    def __init__(self, *, grace_seconds: float = 0.0, clock: Clock = system_clock) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._grace = grace_seconds
        self._clock = clock

    def get(self, key: str) -> CacheEntry | None:
        """Return the entry if fresh or stale-but-servable; evict it if expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not is_servable(entry, self._clock(), self._grace):
            del self._entries[key]
            return None
        return entry

    def peek(self, key: str) -> CacheEntry | None:
        """Return the stored entry without any freshness check."""
        return self._entries.get(key)

    def set(self, key: str, value: Any, ttl: float, *, etag: str | None = None) -> CacheEntry:
        entry = CacheEntry(data=value, timestamp=self._clock(), ttl=ttl, etag=etag)
        self._entries[key] = entry
        return entry

    def put(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if not is_servable(entry, now, self._grace)
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            log.debug("memory_cache_sweep", removed=len(expired))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
