from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update

from app.stockroom.db.models import Product, StockMovement


@dataclass(frozen=True)
class ProductStockSnapshot:
    product_id: int
    stock: int


@dataclass(frozen=True)
class MovementDraft:
    product_id: int
    type: str
    quantity: int
    new_stock: int | None
    previous_stock: int
    resulting_stock: int
    user_id: str | None
    notes: str | None
    ip_address: str | None
    user_agent: str | None
    performed_at: datetime


class StockMovementRepository:
    def __init__(self, db):
        self.db = db

    def find_product_for_update(self, product_id: int) -> ProductStockSnapshot | None:
        row = self.db.execute(
            select(Product.id, Product.stock)
            .where(Product.id == product_id, Product.deleted_at.is_(None))
            .with_for_update()
        ).first()
        if row is None:
            return None
        return ProductStockSnapshot(product_id=row.id, stock=row.stock)

    def compare_and_set_stock(self, *, product_id: int, expected_stock: int, new_stock: int) -> bool:
        result = self.db.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.stock == expected_stock,
                Product.deleted_at.is_(None),
            )
            .values(stock=new_stock, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def append_movement(self, draft: MovementDraft) -> StockMovement:
        movement = StockMovement(
            product_id=draft.product_id,
            user_id=draft.user_id,
            type=draft.type,
            quantity=draft.quantity,
            new_stock=draft.new_stock,
            previous_stock=draft.previous_stock,
            resulting_stock=draft.resulting_stock,
            notes=draft.notes,
            performed_at=draft.performed_at,
            ip_address=draft.ip_address,
            user_agent=draft.user_agent,
        )
        self.db.add(movement)
        self.db.flush()
        return movement

    def list_movements(
        self,
        *,
        product_id: int | None,
        page: int,
        per_page: int,
    ) -> tuple[list[StockMovement], int]:
        query = select(StockMovement)
        if product_id:
            query = query.where(StockMovement.product_id == product_id)
        total = self.db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        rows = (
            self.db.execute(
                query.order_by(StockMovement.performed_at.desc(), StockMovement.id.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
            .scalars()
            .all()
        )
        return list(rows), total
