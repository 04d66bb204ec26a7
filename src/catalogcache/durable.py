"""SQLite-backed durable cache that survives process restarts.

All operations catch ``aiosqlite.Error`` internally and degrade gracefully.
Reads and writes report their outcome as a ``TierResult``: a corrupted row is
deleted and reported as ``Ignorable.CORRUPTED`` (callers treat it as a miss),
a rejected write is reported as ``CAPACITY``, ``UNSERIALIZABLE`` or
``STORAGE_ERROR`` (callers drop it). Nothing raised by the storage layer
crosses the DurableCache boundary; errors are logged with ``exc_info=True``.

Every storage key is ``<prefix><version>_<cache key>``. Bumping the version
makes older rows unreachable, and the next sweep deletes them.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog
from pydantic import ValidationError

from catalogcache.freshness import is_servable, system_clock
from catalogcache.models.cache import CacheEntry, DurableStats, Ignorable, TierResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from pydantic import TypeAdapter

    from catalogcache.freshness import Clock

log = structlog.get_logger()

_CREATE_CACHE_TABLE = """
CREATE TABLE IF NOT EXISTS catalog_cache (
    storage_key TEXT PRIMARY KEY,
    payload     TEXT NOT NULL,
    size_bytes  INTEGER NOT NULL,
    written_at  REAL NOT NULL,
    expires_at  REAL NOT NULL
)
"""

_CREATE_METADATA_TABLE = """
CREATE TABLE IF NOT EXISTS cache_metadata (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""

_CREATE_EXPIRES_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_catalog_cache_expires ON catalog_cache(expires_at)"
)


class DurableCache:
    """Versioned, TTL-aware persistent cache for slow-changing query results."""

    def __init__(
        self,
        db: aiosqlite.Connection,
        *,
        version: str = "1.0",
        key_prefix: str = "catalog_cache_",
        grace_seconds: float = 0.0,
        max_entry_bytes: int = 512 * 1024,
        max_total_bytes: int = 5 * 1024 * 1024,
        clock: Clock = system_clock,
    ) -> None:
        self._db = db
        self._prefix = key_prefix
        self._namespace = f"{key_prefix}{version}_"
        self._grace = grace_seconds
        self._max_entry_bytes = max_entry_bytes
        self._max_total_bytes = max_total_bytes
        self._clock = clock

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_CACHE_TABLE)
        await self._db.execute(_CREATE_METADATA_TABLE)
        await self._db.execute(_CREATE_EXPIRES_INDEX)
        await self._db.commit()

    def storage_key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read(
        self, key: str, adapter: TypeAdapter[Any] | None = None
    ) -> TierResult[CacheEntry]:
        """Read an entry. A miss, an expired row and a corrupted row all carry no value."""
        storage_key = self.storage_key(key)
        try:
            cursor = await self._db.execute(
                "SELECT CAST(payload AS BLOB) FROM catalog_cache WHERE storage_key = ?",
                (storage_key,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("durable_cache_read_error", key=key, exc_info=True)
            return TierResult(ignored=Ignorable.STORAGE_ERROR)

        if row is None:
            return TierResult()

        # Payload bytes go straight to pydantic so that invalid UTF-8 is corruption.
        try:
            entry = CacheEntry.model_validate_json(row[0])
            if adapter is not None:
                entry = entry.model_copy(update={"data": adapter.validate_python(entry.data)})
        except ValidationError:
            log.warning("durable_cache_corrupted_entry", key=key)
            await self._delete_storage_key(storage_key)
            return TierResult(ignored=Ignorable.CORRUPTED)

        if not is_servable(entry, self._clock(), self._grace):
            await self._delete_storage_key(storage_key)
            return TierResult()

        return TierResult(value=entry)

    async def get(self, key: str, adapter: TypeAdapter[Any] | None = None) -> CacheEntry | None:
        return (await self.read(key, adapter)).value

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def write(
        self,
        key: str,
        entry: CacheEntry,
        adapter: TypeAdapter[Any] | None = None,
        *,
        still_current: Callable[[], bool] | None = None,
    ) -> TierResult[None]:
        """Persist ``entry``. On any failure the write is dropped and a sweep runs.

        ``still_current`` is checked immediately before the row is inserted; when
        it returns False (the cache was cleared meanwhile) nothing is written.
        """
        result = await self._write(key, entry, adapter, still_current)
        if not result.ok:
            await self.sweep()
        return result

    async def _write(
        self,
        key: str,
        entry: CacheEntry,
        adapter: TypeAdapter[Any] | None,
        still_current: Callable[[], bool] | None,
    ) -> TierResult[None]:
        storage_key = self.storage_key(key)
        try:
            data = entry.data
            if adapter is not None:
                data = adapter.dump_python(data, mode="json")
            payload = entry.model_copy(update={"data": data}).model_dump_json()
        except (TypeError, ValueError):
            log.warning("durable_cache_serialize_error", key=key, exc_info=True)
            return TierResult(ignored=Ignorable.UNSERIALIZABLE)

        size = len(payload.encode("utf-8"))
        if size > self._max_entry_bytes:
            log.warning("durable_cache_entry_too_large", key=key, size_bytes=size)
            return TierResult(ignored=Ignorable.CAPACITY)

        try:
            cursor = await self._db.execute(
                "SELECT COALESCE(SUM(size_bytes), 0) FROM catalog_cache WHERE storage_key != ?",
                (storage_key,),
            )
            row = await cursor.fetchone()
            used = int(row[0]) if row else 0
            if used + size > self._max_total_bytes:
                log.warning(
                    "durable_cache_quota_exceeded",
                    key=key,
                    size_bytes=size,
                    used_bytes=used,
                    quota_bytes=self._max_total_bytes,
                )
                return TierResult(ignored=Ignorable.CAPACITY)

            # No await between this check and queueing the INSERT.
            if still_current is not None and not still_current():
                log.debug("durable_cache_write_skipped", key=key, reason="cleared")
                return TierResult()

            await self._db.execute(
                "INSERT OR REPLACE INTO catalog_cache "
                "(storage_key, payload, size_bytes, written_at, expires_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (storage_key, payload, size, entry.timestamp, entry.timestamp + entry.ttl),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("durable_cache_write_error", key=key, exc_info=True)
            return TierResult(ignored=Ignorable.STORAGE_ERROR)

        return TierResult()

    async def set(self, key: str, value: Any, ttl: float) -> bool:
        entry = CacheEntry(data=value, timestamp=self._clock(), ttl=ttl)
        return (await self.write(key, entry)).ok

    async def delete(self, key: str) -> None:
        await self._delete_storage_key(self.storage_key(key))

    async def _delete_storage_key(self, storage_key: str) -> None:
        try:
            await self._db.execute(
                "DELETE FROM catalog_cache WHERE storage_key = ?", (storage_key,)
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("durable_cache_delete_error", storage_key=storage_key, exc_info=True)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def sweep(self) -> int:
        """Delete expired rows and rows left behind by other versions. Non-fatal."""
        try:
            cursor = await self._db.execute(
                "DELETE FROM catalog_cache "
                "WHERE expires_at + ? < ? OR substr(storage_key, 1, ?) != ?",
                (self._grace, self._clock(), len(self._namespace), self._namespace),
            )
            deleted = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("durable_cache_sweep_error", exc_info=True)
            return 0
        log.info("durable_cache_sweep_complete", deleted=deleted)
        return deleted

    async def sweep_if_due(self, interval_hours: int) -> None:
        """Run ``sweep`` if the last recorded sweep is older than ``interval_hours``.

        A metadata read failure falls through to running the sweep.
        """
        now = datetime.now(UTC)
        try:
            cursor = await self._db.execute(
                "SELECT value FROM cache_metadata WHERE key = 'last_sweep_at'"
            )
            row = await cursor.fetchone()
            if row is not None:
                last = datetime.fromisoformat(row[0])
                if now - last < timedelta(hours=interval_hours):
                    log.debug("durable_cache_sweep_skipped", last_sweep_at=row[0])
                    return
        except (aiosqlite.Error, ValueError):
            log.warning("durable_cache_metadata_read_error", exc_info=True)

        await self.sweep()
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO cache_metadata (key, value) VALUES ('last_sweep_at', ?)",
                (now.isoformat(),),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("durable_cache_metadata_write_error", exc_info=True)

    async def clear(self) -> None:
        """Delete every row under this cache's prefix, whatever its version."""
        try:
            await self._db.execute(
                "DELETE FROM catalog_cache WHERE substr(storage_key, 1, ?) = ?",
                (len(self._prefix), self._prefix),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("durable_cache_clear_error", exc_info=True)

    async def stats(self) -> DurableStats:
        try:
            cursor = await self._db.execute(
                "SELECT COUNT(*), COALESCE(SUM(size_bytes), 0) FROM catalog_cache "
                "WHERE substr(storage_key, 1, ?) = ?",
                (len(self._namespace), self._namespace),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("durable_cache_stats_error", exc_info=True)
            return DurableStats(count=0, size_bytes=0)
        if row is None:
            return DurableStats(count=0, size_bytes=0)
        return DurableStats(count=int(row[0]), size_bytes=int(row[1]))
