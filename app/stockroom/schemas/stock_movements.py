from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from app.stockroom.db.models import StockMovement
from app.stockroom.schemas.products import ProductResponse

MovementType = Literal["in", "out", "adjust"]


class StockMovementCreateRequest(BaseModel):
    product_id: int
    type: MovementType
    quantity: int | None = None
    new_stock: int | None = None
    notes: str | None = None


class StockMovementResponse(BaseModel):
    id: int
    product_id: int
    user_id: str | None
    type: MovementType
    quantity: int
    new_stock: int | None
    previous_stock: int
    resulting_stock: int
    notes: str | None
    performed_at: datetime
    ip_address: str | None
    user_agent: str | None


class StockMovementCreateResponse(BaseModel):
    product: ProductResponse
    movement: StockMovementResponse


class StockMovementPageMeta(BaseModel):
    page: int
    per_page: int
    total: int
    last_page: int
    product_id: int | None = None


class StockMovementPageResponse(BaseModel):
    meta: StockMovementPageMeta
    rows: list[StockMovementResponse]


def movement_to_response(row: StockMovement) -> StockMovementResponse:
    return StockMovementResponse(
        id=row.id,
        product_id=row.product_id,
        user_id=row.user_id,
        type=row.type,
        quantity=row.quantity,
        new_stock=row.new_stock,
        previous_stock=row.previous_stock,
        resulting_stock=row.resulting_stock,
        notes=row.notes,
        performed_at=row.performed_at,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
    )
