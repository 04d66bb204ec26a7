from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class CacheEntry(BaseModel):
    """A cached query result.

    Entries are frozen: refreshing a key always stores a new entry so that a
    reader holding the old one never sees a half-updated value.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    data: Any
    timestamp: float  # Epoch seconds at write time
    ttl: float  # Seconds
    etag: str | None = None


class Freshness(StrEnum):
    FRESH = "fresh"
    STALE = "stale"  # Past TTL but inside the grace window; servable
    EXPIRED = "expired"


class Ignorable(StrEnum):
    """Durable-tier failures that callers treat as a miss or a dropped write."""

    CORRUPTED = "corrupted"
    CAPACITY = "capacity"
    UNSERIALIZABLE = "unserializable"
    STORAGE_ERROR = "storage_error"


@dataclass(frozen=True, slots=True)
class TierResult(Generic[T]):
    value: T | None = None
    ignored: Ignorable | None = None

    @property
    def ok(self) -> bool:
        return self.ignored is None


@dataclass(frozen=True, slots=True)
class DurableStats:
    count: int
    size_bytes: int


@dataclass(frozen=True, slots=True)
class PrefetchStats:
    prefetched: int
    queued: int


@dataclass(frozen=True, slots=True)
class CacheStats:
    memory_entries: int
    memory_keys: list[str]
    durable: DurableStats
    prefetch: PrefetchStats
