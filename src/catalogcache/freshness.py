"""The single place where cache entries are judged fresh, stale or expired."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from catalogcache.models.cache import Freshness

if TYPE_CHECKING:
    from catalogcache.models.cache import CacheEntry

Clock = Callable[[], float]

# Wall-clock seconds: durable entries are compared across process restarts.
system_clock: Clock = time.time


def freshness(entry: CacheEntry, now: float, grace: float) -> Freshness:
    """Classify ``entry`` at ``now``.

    Both boundaries belong to the servable side: an entry is fresh at exactly
    ``timestamp + ttl`` and still stale at exactly ``timestamp + ttl + grace``.
    """
    fresh_until = entry.timestamp + entry.ttl
    if now <= fresh_until:
        return Freshness.FRESH
    if now <= fresh_until + grace:
        return Freshness.STALE
    return Freshness.EXPIRED


def is_servable(entry: CacheEntry, now: float, grace: float) -> bool:
    return freshness(entry, now, grace) is not Freshness.EXPIRED
