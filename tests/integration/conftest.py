"""Integration test fixtures.

Everything is wired through ``open_catalog`` against a SQLite file in
``tmp_path``; the origin, the edge function and the image CDN are mocked at
the HTTP layer with respx.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx
import pytest
import respx

from catalogcache.config import Settings

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

ORIGIN_URL = "https://project.supabase.co"
PRODUCTS_URL = f"{ORIGIN_URL}/rest/v1/products"
EDGE_BASE_URL = "https://shop.example.com/.netlify/functions"
EDGE_URL = f"{EDGE_BASE_URL}/cache-products"
CDN_URL = "https://cdn.example.com/"


def postgrest_handler(products: list[dict[str, Any]]) -> Callable[[httpx.Request], httpx.Response]:
    """Answer the subset of PostgREST queries PostgrestCatalogSource sends."""

    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        rows = products
        if params.get("select") == "category":
            return httpx.Response(200, json=[{"category": p["category"]} for p in rows])

        id_filter = params.get("id")
        if id_filter is not None:
            if id_filter.startswith("eq."):
                wanted = {id_filter.removeprefix("eq.")}
            else:
                wanted = set(id_filter.removeprefix("in.(").removesuffix(")").split(","))
            rows = [p for p in rows if p["id"] in wanted]

        category = params.get("category")
        if category is not None:
            name = category.removeprefix("eq.").strip('"')
            rows = [p for p in rows if p["category"] == name]

        offset = int(params.get("offset", 0))
        limit = int(params.get("limit", len(rows)))
        return httpx.Response(200, json=rows[offset : offset + limit])

    return handler


@dataclass
class MockedCatalog:
    origin: respx.Route
    edge: respx.Route
    cdn: respx.Route


@pytest.fixture()
def mocked(sample_products: list[dict[str, Any]]):
    with respx.mock(assert_all_called=False) as router:
        yield MockedCatalog(
            origin=router.get(PRODUCTS_URL).mock(side_effect=postgrest_handler(sample_products)),
            edge=router.get(EDGE_URL).mock(return_value=httpx.Response(503)),
            cdn=router.get(url__startswith=CDN_URL).mock(
                return_value=httpx.Response(200, content=b"img")
            ),
        )


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "nested" / "dir" / "catalog.db"


@pytest.fixture()
def settings(db_path: Path) -> Settings:
    return Settings(
        cache={"db_path": str(db_path)},  # type: ignore[arg-type]
        origin={"url": ORIGIN_URL, "api_key": "anon-key"},  # type: ignore[arg-type]
        edge={"mode": "off"},  # type: ignore[arg-type]
    )


@pytest.fixture()
def edge_settings(db_path: Path) -> Settings:
    return Settings(
        cache={"db_path": str(db_path)},  # type: ignore[arg-type]
        origin={"url": ORIGIN_URL, "api_key": "anon-key"},  # type: ignore[arg-type]
        edge={"mode": "on", "base_url": EDGE_BASE_URL},  # type: ignore[arg-type]
    )
