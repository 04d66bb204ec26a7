"""Unit-specific fixtures (no I/O beyond in-memory SQLite)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import pytest

from catalogcache.durable import DurableCache
from catalogcache.memory import MemoryCache

if TYPE_CHECKING:
    from tests.conftest import FakeClock

GRACE = 300.0


@pytest.fixture()
async def durable(clock: FakeClock):
    """In-memory SQLite durable cache for unit tests."""
    async with aiosqlite.connect(":memory:") as db:
        d = DurableCache(db, version="1.0", grace_seconds=GRACE, clock=clock)
        await d.init_db()
        yield d


@pytest.fixture()
def memory(clock: FakeClock) -> MemoryCache:
    return MemoryCache(grace_seconds=GRACE, clock=clock)
