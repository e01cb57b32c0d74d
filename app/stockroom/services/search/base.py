from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from app.stockroom.db.models import Product
from app.stockroom.schemas.products import ProductSuggestion


@dataclass(frozen=True)
class ProductSearchQuery:
    q: str = ""
    is_active: bool | None = None
    brand: str | None = None
    model: str | None = None
    category: str | None = None
    price_min: Decimal | None = None
    price_max: Decimal | None = None
    sort_field: str = "created_at"
    sort_direction: str = "desc"
    page: int = 1
    per_page: int = 10


@dataclass
class ProductPage:
    rows: list[Product]
    total: int
    page: int
    per_page: int
    sort_field: str
    sort_direction: str
    mode: str
    extra: dict = field(default_factory=dict)

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page)) if self.per_page else 1


class ProductSearch(Protocol):
    mode: str

    def search(self, db, query: ProductSearchQuery) -> ProductPage: ...

    def suggest(self, db, q: str, limit: int) -> list[ProductSuggestion]: ...

    def index(self, product: Product) -> None: ...

    def remove(self, product_id: int) -> None: ...


def normalize_sort_direction(value: str | None, default: str = "desc") -> str:
    if value is None:
        return default
    return "asc" if value.strip().lower() == "asc" else "desc"
