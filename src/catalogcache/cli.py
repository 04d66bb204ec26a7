"""Command-line access to the catalog cache.

Results are printed to stdout as JSON; logs go to stderr. Useful for warming
the durable cache from a deploy hook and for inspecting it afterwards:

    catalogcache warm --category Crochet --limit 20
    catalogcache stats
    catalogcache clear
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import sys
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from catalogcache.config import Settings
from catalogcache.errors import CatalogCacheError, ErrorCode
from catalogcache.logging_setup import configure_logging
from catalogcache.state import open_catalog

if TYPE_CHECKING:
    from collections.abc import Sequence

    from catalogcache.state import AppState


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalogcache", description="Query and maintain the catalog cache."
    )
    commands = parser.add_subparsers(dest="command", required=True)

    products = commands.add_parser("products", help="List products (cached)")
    products.add_argument("--category", default=None)
    products.add_argument("--search", default=None)
    products.add_argument("--limit", type=int, default=None)
    products.add_argument("--offset", type=int, default=0)

    product = commands.add_parser("product", help="Show one product (cached)")
    product.add_argument("product_id")

    commands.add_parser("categories", help="List categories (cached)")

    warm = commands.add_parser("warm", help="Populate the cache for a listing and its categories")
    warm.add_argument("--category", default=None)
    warm.add_argument("--limit", type=int, default=None)

    commands.add_parser("stats", help="Show cache statistics")
    commands.add_parser("clear", help="Drop every cached entry")
    commands.add_parser("health", help="Check the edge cache function")
    return parser


async def _run(state: AppState, args: argparse.Namespace) -> Any:
    service = state.service
    match args.command:
        case "products":
            return await service.list_products(
                category=args.category, search=args.search, limit=args.limit, offset=args.offset
            )
        case "product":
            return await service.get_product(args.product_id)
        case "categories":
            return await service.list_categories()
        case "warm":
            service.prefetch_products(category=args.category, limit=args.limit)
            await service.list_categories()
            await service.aclose()
            return await service.cache_stats()
        case "stats":
            return await service.cache_stats()
        case "clear":
            await service.clear_cache()
            return {"cleared": True}
        case "health":
            if state.edge is None:
                raise CatalogCacheError(
                    code=ErrorCode.NOT_CONFIGURED,
                    message="The edge cache is not enabled",
                    suggestion="Set CATALOGCACHE__EDGE__BASE_URL and CATALOGCACHE__EDGE__MODE=on",
                )
            return await state.edge.health()
    raise AssertionError(f"unhandled command {args.command!r}")


async def _main(settings: Settings, args: argparse.Namespace) -> Any:
    async with open_catalog(settings) as state:
        return await _run(state, args)


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        settings = Settings()
    except ValidationError as exc:
        print(f"Invalid configuration:\n{exc}", file=sys.stderr)
        return 2
    configure_logging(settings.logging)

    try:
        result = asyncio.run(_main(settings, args))
    except CatalogCacheError as exc:
        print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130

    print(json.dumps(_jsonable(result), indent=2, default=str))
    return 0
