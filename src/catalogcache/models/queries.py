from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, field_validator

_PRODUCT_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

MAX_LIMIT = 100
MAX_OFFSET = 10_000
MAX_TEXT_LENGTH = 100
MAX_IDS = 50


def _validate_product_id(v: str) -> str:
    v = v.strip()
    if not _PRODUCT_ID.match(v):
        raise ValueError(f"Invalid product ID: {v!r}")
    return v


class ListProductsInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str | None = None
    search: str | None = None
    limit: int
    offset: int = 0

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if len(v) > MAX_TEXT_LENGTH:
            raise ValueError(f"category must not exceed {MAX_TEXT_LENGTH} characters")
        # "All" is the UI's spelling of "no category filter".
        if not v or v == "All":
            return None
        return v

    @field_validator("search")
    @classmethod
    def validate_search(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if len(v) > MAX_TEXT_LENGTH:
            raise ValueError(f"search must not exceed {MAX_TEXT_LENGTH} characters")
        return v or None

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: int) -> int:
        if not 1 <= v <= MAX_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_LIMIT}")
        return v

    @field_validator("offset")
    @classmethod
    def validate_offset(cls, v: int) -> int:
        if not 0 <= v <= MAX_OFFSET:
            raise ValueError(f"offset must be between 0 and {MAX_OFFSET}")
        return v


class ProductDetailInput(BaseModel):
    product_id: str

    @field_validator("product_id")
    @classmethod
    def validate_product_id(cls, v: str) -> str:
        return _validate_product_id(v)


class ProductSummariesInput(BaseModel):
    product_ids: list[str]

    @field_validator("product_ids")
    @classmethod
    def validate_product_ids(cls, v: list[str]) -> list[str]:
        ids = sorted({_validate_product_id(item) for item in v})
        if len(ids) > MAX_IDS:
            raise ValueError(f"at most {MAX_IDS} product IDs may be requested at once")
        return ids
