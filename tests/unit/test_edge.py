"""Unit tests for catalogcache.edge and catalogcache.transport."""

from __future__ import annotations

import httpx
import pytest
import respx

from catalogcache.config import EdgeSettings
from catalogcache.edge import EdgeCacheClient, edge_cache_enabled
from catalogcache.errors import CatalogCacheError, ErrorCode
from catalogcache.transport import build_http_client

BASE_URL = "https://shop.example.com/.netlify/functions"
EDGE_URL = f"{BASE_URL}/cache-products"

# ---------------------------------------------------------------------------
# edge_cache_enabled
# ---------------------------------------------------------------------------


class TestEdgeCacheEnabled:
    def test_off_without_base_url(self) -> None:
        assert not edge_cache_enabled(EdgeSettings(mode="on"), environ={})

    def test_forced_on(self) -> None:
        assert edge_cache_enabled(EdgeSettings(mode="on", base_url=BASE_URL), environ={})

    def test_forced_off(self) -> None:
        settings = EdgeSettings(mode="off", base_url=BASE_URL)
        assert not edge_cache_enabled(settings, environ={"CONTEXT": "production"})

    def test_auto_follows_deploy_context(self) -> None:
        settings = EdgeSettings(base_url=BASE_URL)
        assert edge_cache_enabled(settings, environ={"CONTEXT": "production"})
        assert not edge_cache_enabled(settings, environ={"CONTEXT": "deploy-preview"})
        assert not edge_cache_enabled(settings, environ={})

    def test_auto_custom_context_variable(self) -> None:
        settings = EdgeSettings(base_url=BASE_URL, context_env="APP_ENV")
        assert edge_cache_enabled(settings, environ={"APP_ENV": "Production"})


# ---------------------------------------------------------------------------
# build_http_client
# ---------------------------------------------------------------------------


class TestBuildHttpClient:
    def test_client_configuration(self) -> None:
        client = build_http_client(timeout=7.0)
        assert isinstance(client, httpx.AsyncClient)
        assert client.follow_redirects is True
        assert client.timeout.read == 7.0
        assert client.headers["user-agent"].startswith("catalogcache/")


# ---------------------------------------------------------------------------
# EdgeCacheClient
# ---------------------------------------------------------------------------


def _envelope(data: object, **extra: object) -> dict[str, object]:
    return {"success": True, "data": data, **extra}


class TestEdgeCacheClient:
    async def test_list_products_success(self) -> None:
        with respx.mock:
            route = respx.get(EDGE_URL).mock(
                return_value=httpx.Response(
                    200,
                    json=_envelope([{"id": "p1"}], count=1),
                    headers={"ETag": '"v1"', "X-Cache-Status": "HIT"},
                )
            )
            async with httpx.AsyncClient() as client:
                edge = EdgeCacheClient(client, BASE_URL)
                response = await edge.list_products(category="Crochet", limit=10, offset=0)

            assert response.data == [{"id": "p1"}]
            assert response.etag == '"v1"'
            assert response.cache_status == "HIT"
            assert not response.not_modified
            params = route.calls.last.request.url.params
            assert params["action"] == "products"
            assert params["category"] == "Crochet"
            assert params["limit"] == "10"
            assert params["offset"] == "0"
            assert "search" not in params

    async def test_categories_action(self) -> None:
        with respx.mock:
            route = respx.get(EDGE_URL).mock(
                return_value=httpx.Response(200, json=_envelope(["Crochet"]))
            )
            async with httpx.AsyncClient() as client:
                response = await EdgeCacheClient(client, BASE_URL).list_categories()

            assert response.data == ["Crochet"]
            assert route.calls.last.request.url.params["action"] == "categories"

    async def test_conditional_request_not_modified(self) -> None:
        with respx.mock:
            route = respx.get(EDGE_URL).mock(return_value=httpx.Response(304))
            async with httpx.AsyncClient() as client:
                edge = EdgeCacheClient(client, BASE_URL)
                response = await edge.list_categories(etag='"v1"')

            assert response.not_modified
            assert response.data is None
            assert response.etag == '"v1"'
            assert route.calls.last.request.headers["if-none-match"] == '"v1"'

    async def test_500_raises_recoverable(self) -> None:
        with respx.mock:
            respx.get(EDGE_URL).mock(return_value=httpx.Response(500))
            async with httpx.AsyncClient() as client:
                with pytest.raises(CatalogCacheError) as exc_info:
                    await EdgeCacheClient(client, BASE_URL).list_categories()
            assert exc_info.value.code == ErrorCode.EDGE_CACHE_UNAVAILABLE
            assert exc_info.value.recoverable is True

    async def test_network_error_raises(self) -> None:
        with respx.mock:
            respx.get(EDGE_URL).mock(side_effect=httpx.ConnectError("Connection refused"))
            async with httpx.AsyncClient() as client:
                with pytest.raises(CatalogCacheError) as exc_info:
                    await EdgeCacheClient(client, BASE_URL).list_categories()
            assert exc_info.value.code == ErrorCode.EDGE_CACHE_UNAVAILABLE

    async def test_failed_envelope_raises(self) -> None:
        with respx.mock:
            respx.get(EDGE_URL).mock(
                return_value=httpx.Response(200, json={"success": False, "error": "boom"})
            )
            async with httpx.AsyncClient() as client:
                with pytest.raises(CatalogCacheError) as exc_info:
                    await EdgeCacheClient(client, BASE_URL).list_categories()
            assert exc_info.value.message == "boom"

    async def test_malformed_body_raises(self) -> None:
        with respx.mock:
            respx.get(EDGE_URL).mock(return_value=httpx.Response(200, text="<html>"))
            async with httpx.AsyncClient() as client:
                with pytest.raises(CatalogCacheError) as exc_info:
                    await EdgeCacheClient(client, BASE_URL).list_categories()
            assert exc_info.value.code == ErrorCode.EDGE_CACHE_UNAVAILABLE

    async def test_custom_function_name(self) -> None:
        with respx.mock:
            route = respx.get(f"{BASE_URL}/catalog").mock(
                return_value=httpx.Response(200, json=_envelope([]))
            )
            async with httpx.AsyncClient() as client:
                edge = EdgeCacheClient(client, BASE_URL + "/", function="catalog")
                response = await edge.list_products(limit=5)

            assert route.called
            assert response.data == []

    async def test_health(self) -> None:
        with respx.mock:
            respx.get(EDGE_URL).mock(
                return_value=httpx.Response(200, json={"status": "healthy", "cacheSize": 3})
            )
            async with httpx.AsyncClient() as client:
                health = await EdgeCacheClient(client, BASE_URL).health()
            assert health["status"] == "healthy"
