from __future__ import annotations

import uuid

from app.stockroom.core.security import create_actor_token
from app.stockroom.db.models import Product, StockMovement


def create_product(client, *, stock: int = 0, **overrides) -> dict:
    payload = {
        "sku": f"SKU-{uuid.uuid4().hex[:8].upper()}",
        "name": "Samsung Galaxy A15",
        "brand": "Samsung",
        "model": "A15",
        "barcode": None,
        "price": "199.90",
        "stock": stock,
        "is_active": True,
    }
    payload.update(overrides)
    response = client.post("/products", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def post_movement(client, product_id: int, movement_type: str, *, headers: dict | None = None, **fields):
    payload = {"product_id": product_id, "type": movement_type}
    payload.update(fields)
    return client.post("/stock-movements", json=payload, headers=headers or {})


def auth_headers(actor_id: str = "clerk-1", **extra) -> dict:
    headers = {"Authorization": f"Bearer {create_actor_token(actor_id)}"}
    headers.update(extra)
    return headers


def current_stock(db_session, product_id: int) -> int:
    return db_session.query(Product.stock).filter(Product.id == product_id).scalar()


def movement_count(db_session, product_id: int, movement_type: str | None = None) -> int:
    query = db_session.query(StockMovement).filter(StockMovement.product_id == product_id)
    if movement_type is not None:
        query = query.filter(StockMovement.type == movement_type)
    return query.count()
