from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ProductSummary(BaseModel):
    """Minimal product fields for cart and order summaries."""

    id: str
    name: str
    price: float
    image_url: str | None = None
    category: str


class ProductListing(ProductSummary):
    """Fields needed to render a product card without a detail fetch."""

    stock_quantity: int | None = None
    delivery_charge: float | None = None
    is_available: bool | None = None


class Product(ProductListing):
    """Full product row."""

    description: str = ""
    created_at: datetime | None = None
