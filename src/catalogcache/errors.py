"""Error types raised across the catalog cache.

Only two classes of failure ever reach a caller of the read API: transport
failures from the origin (after the edge cache has been given up on) and
invalid query parameters. Storage corruption and capacity problems in the
durable tier are handled where they happen and never become a
``CatalogCacheError``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    EDGE_CACHE_UNAVAILABLE = "EDGE_CACHE_UNAVAILABLE"
    ORIGIN_UNAVAILABLE = "ORIGIN_UNAVAILABLE"
    ORIGIN_INVALID_RESPONSE = "ORIGIN_INVALID_RESPONSE"
    NOT_CONFIGURED = "NOT_CONFIGURED"


class CatalogCacheError(Exception):
    """Single error type for everything the read API can raise."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        recoverable: bool = False,
        suggestion: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable
        self.suggestion = suggestion

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "recoverable": self.recoverable,
        }
        if self.suggestion:
            error["suggestion"] = self.suggestion
        return {"error": error}

    def __repr__(self) -> str:
        return f"CatalogCacheError(code={self.code.value!r}, message={self.message!r})"
