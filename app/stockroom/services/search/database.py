from __future__ import annotations

from app.stockroom.db.models import Product
from app.stockroom.repos.products import ProductQueryFilters, ProductRepository
from app.stockroom.schemas.products import ProductSuggestion, product_to_suggestion
from app.stockroom.services.search.base import ProductPage, ProductSearchQuery


class DatabaseProductSearch:
    mode = "database"

    def search(self, db, query: ProductSearchQuery) -> ProductPage:
        filters = ProductQueryFilters(
            q=query.q,
            is_active=query.is_active,
            brand=query.brand,
            model=query.model,
        )
        rows, total, sort_field = ProductRepository(db).list_products(
            filters,
            page=query.page,
            per_page=query.per_page,
            sort_field=query.sort_field,
            sort_direction=query.sort_direction,
        )
        return ProductPage(
            rows=rows,
            total=total,
            page=query.page,
            per_page=query.per_page,
            sort_field=sort_field,
            sort_direction=query.sort_direction,
            mode=self.mode,
        )

    def suggest(self, db, q: str, limit: int) -> list[ProductSuggestion]:
        page = self.search(db, ProductSearchQuery(q=q, sort_field="name", sort_direction="asc", per_page=limit))
        return [product_to_suggestion(row) for row in page.rows]

    def index(self, product: Product) -> None:
        return None

    def remove(self, product_id: int) -> None:
        return None
