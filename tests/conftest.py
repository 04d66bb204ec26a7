"""Shared fixtures: sample catalog rows, a fake clock and a scriptable origin."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from collections.abc import Sequence


class FakeClock:
    """Manually advanced clock, in epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_listing(index: int, *, category: str = "Crochet") -> dict[str, Any]:
    return {
        "id": f"p{index}",
        "name": f"Product {index}",
        "price": 10.0 + index,
        "image_url": f"https://cdn.example.com/images/p{index}.jpg",
        "category": category,
        "stock_quantity": 5,
        "delivery_charge": 3.99,
        "is_available": True,
    }


class FakeOrigin:
    """In-process CatalogSource that counts calls.

    Set ``gate`` to an ``asyncio.Event`` to hold every call until it is set,
    and ``error`` to make calls fail.
    """

    def __init__(self, products: list[dict[str, Any]] | None = None) -> None:
        self.products = products if products is not None else [make_listing(i) for i in range(3)]
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.gate: asyncio.Event | None = None
        self.error: Exception | None = None

    async def _call(self, name: str, **params: Any) -> None:
        self.calls.append((name, params))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    async def list_products(
        self, *, category: str | None, search: str | None, limit: int, offset: int
    ) -> list[dict[str, Any]]:
        await self._call(
            "list_products", category=category, search=search, limit=limit, offset=offset
        )
        rows = [p for p in self.products if category is None or p["category"] == category]
        if search:
            rows = [p for p in rows if search.lower() in p["name"].lower()]
        return [dict(p) for p in rows[offset : offset + limit]]

    async def get_product_detail(self, product_id: str) -> dict[str, Any] | None:
        await self._call("get_product_detail", product_id=product_id)
        for p in self.products:
            if p["id"] == product_id:
                return {**p, "description": "Hand made", "created_at": "2025-01-01T00:00:00Z"}
        return None

    async def get_products_by_ids(self, product_ids: Sequence[str]) -> list[dict[str, Any]]:
        await self._call("get_products_by_ids", product_ids=list(product_ids))
        return [dict(p) for p in self.products if p["id"] in product_ids]

    async def list_categories(self) -> list[str]:
        await self._call("list_categories")
        return sorted({p["category"] for p in self.products})


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sample_products() -> list[dict[str, Any]]:
    return [make_listing(i) for i in range(8)] + [make_listing(8, category="Knitting")]


@pytest.fixture()
def origin(sample_products: list[dict[str, Any]]) -> FakeOrigin:
    return FakeOrigin(sample_products)
