from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel


class EdgeEnvelope(BaseModel):
    """JSON body returned by the edge cache function."""

    success: bool
    data: Any = None
    error: str | None = None
    stale: bool = False
    count: int | None = None


@dataclass(frozen=True, slots=True)
class EdgeResponse:
    data: Any = None
    etag: str | None = None
    cache_status: str | None = None  # X-Cache-Status: HIT | STALE | MISS
    not_modified: bool = False
