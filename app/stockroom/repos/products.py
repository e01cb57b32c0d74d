from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, func, or_, select

from app.stockroom.db.models import Product


SORTABLE_COLUMNS = {
    "name": Product.name,
    "sku": Product.sku,
    "brand": Product.brand,
    "model": Product.model,
    "stock": Product.stock,
    "price": Product.price,
    "created_at": Product.created_at,
    "updated_at": Product.updated_at,
}
DEFAULT_SORT_FIELD = "created_at"


@dataclass(frozen=True)
class ProductQueryFilters:
    q: str | None = None
    is_active: bool | None = None
    brand: str | None = None
    model: str | None = None


class ProductRepository:
    def __init__(self, db):
        self.db = db

    def get(self, product_id: int) -> Product | None:
        stmt = select(Product).where(Product.id == product_id, Product.deleted_at.is_(None))
        return self.db.execute(stmt).scalars().first()

    def get_by_sku(self, sku: str) -> Product | None:
        return self.db.execute(select(Product).where(Product.sku == sku)).scalars().first()

    def get_many(self, product_ids: list[int]) -> list[Product]:
        """Loads live products keeping the order of ``product_ids``."""
        if not product_ids:
            return []
        rows = (
            self.db.execute(
                select(Product).where(Product.id.in_(product_ids), Product.deleted_at.is_(None))
            )
            .scalars()
            .all()
        )
        by_id = {row.id: row for row in rows}
        return [by_id[product_id] for product_id in product_ids if product_id in by_id]

    def add(self, product: Product) -> Product:
        self.db.add(product)
        self.db.flush()
        return product

    def soft_delete(self, product: Product) -> None:
        now = datetime.utcnow()
        product.deleted_at = now
        product.updated_at = now
        self.db.flush()

    def list_products(
        self,
        filters: ProductQueryFilters,
        *,
        page: int,
        per_page: int,
        sort_field: str,
        sort_direction: str,
    ) -> tuple[list[Product], int, str]:
        base_query = self._apply_filters(filters)
        total = self.db.execute(select(func.count()).select_from(base_query.subquery())).scalar_one()

        resolved_sort_field = sort_field if sort_field in SORTABLE_COLUMNS else DEFAULT_SORT_FIELD
        sort_column = SORTABLE_COLUMNS[resolved_sort_field]
        sort_column = sort_column.asc() if sort_direction == "asc" else sort_column.desc()

        query = (
            base_query.order_by(sort_column, Product.id.asc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        rows = self.db.execute(query).scalars().all()
        return list(rows), total, resolved_sort_field

    def _apply_filters(self, filters: ProductQueryFilters):
        query = select(Product).where(Product.deleted_at.is_(None))
        tokens = (filters.q or "").split()
        if tokens:
            # every token must match at least one searchable column
            query = query.where(
                and_(
                    *(
                        or_(
                            Product.name.ilike(f"%{token}%"),
                            Product.sku.ilike(f"%{token}%"),
                            Product.brand.ilike(f"%{token}%"),
                            Product.model.ilike(f"%{token}%"),
                            Product.barcode.ilike(f"%{token}%"),
                        )
                        for token in tokens
                    )
                )
            )
        if filters.is_active is not None:
            query = query.where(Product.is_active.is_(filters.is_active))
        if filters.brand:
            query = query.where(Product.brand == filters.brand)
        if filters.model:
            query = query.where(Product.model == filters.model)
        return query
