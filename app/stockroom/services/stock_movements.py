"""Stock movement validation and application.

A movement changes ``Product.stock`` and appends one ``StockMovement`` row in
the same transaction. The write is a compare-and-set on the stock value read
under ``SELECT ... FOR UPDATE``: on databases with row locks the condition
always holds, elsewhere a concurrent writer makes it fail and the movement is
recomputed from the fresh value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from app.stockroom.core.config import settings
from app.stockroom.core.context import RequestContext
from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.core.logging import log_json
from app.stockroom.core.metrics import metrics
from app.stockroom.db.models import INTEGER_MAX, Product, StockMovement
from app.stockroom.repos.stock_movements import MovementDraft, StockMovementRepository
from app.stockroom.schemas.stock_movements import StockMovementCreateRequest
from app.stockroom.services.search.base import ProductSearch

logger = logging.getLogger(__name__)

NOTES_MAX_LENGTH = 1000


@dataclass(frozen=True)
class MovementCommand:
    product_id: int
    type: str
    quantity: int
    new_stock: int | None
    notes: str | None


@dataclass(frozen=True)
class MovementResult:
    product: Product
    movement: StockMovement
    attempts: int


def validate_movement(payload: StockMovementCreateRequest) -> MovementCommand:
    errors = []
    if payload.product_id < 1:
        errors.append(_error("product_id", "product_id must be a positive integer", "greater_than_equal"))
    elif payload.product_id > INTEGER_MAX:
        errors.append(_error("product_id", _too_large("product_id"), "less_than_equal"))
    if payload.type == "adjust":
        if payload.new_stock is None:
            errors.append(_error("new_stock", "new_stock is required for adjust movements", "missing"))
        elif payload.new_stock < 0:
            errors.append(_error("new_stock", "new_stock must be greater than or equal to 0", "greater_than_equal"))
        elif payload.new_stock > INTEGER_MAX:
            errors.append(_error("new_stock", _too_large("new_stock"), "less_than_equal"))
    else:
        if payload.quantity is None:
            errors.append(_error("quantity", f"quantity is required for {payload.type} movements", "missing"))
        elif payload.quantity < 1:
            errors.append(_error("quantity", "quantity must be greater than or equal to 1", "greater_than_equal"))
        elif payload.quantity > INTEGER_MAX:
            errors.append(_error("quantity", _too_large("quantity"), "less_than_equal"))
    if payload.notes is not None and len(payload.notes) > NOTES_MAX_LENGTH:
        errors.append(_error("notes", f"notes must be at most {NOTES_MAX_LENGTH} characters", "string_too_long"))
    if errors:
        metrics.increment_stock_movement_rejection("validation")
        raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"errors": errors})

    if payload.type == "adjust":
        return MovementCommand(
            product_id=payload.product_id,
            type="adjust",
            quantity=0,
            new_stock=payload.new_stock,
            notes=payload.notes,
        )
    return MovementCommand(
        product_id=payload.product_id,
        type=payload.type,
        quantity=payload.quantity,
        new_stock=None,
        notes=payload.notes,
    )


def _error(field: str, message: str, error_type: str) -> dict:
    return {"field": field, "message": message, "type": error_type, "loc": ["body", field]}


def _too_large(field: str) -> str:
    return f"{field} must be less than or equal to {INTEGER_MAX}"


def compute_resulting_stock(movement_type: str, current: int, *, quantity: int = 0, new_stock: int | None = None) -> int:
    if movement_type == "in":
        resulting = current + quantity
        if resulting > INTEGER_MAX:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"errors": [_error("quantity", f"resulting stock must be less than or equal to {INTEGER_MAX}", "less_than_equal")]},
            )
        return resulting
    if movement_type == "out":
        resulting = current - quantity
        if resulting < 0:
            raise AppError(
                ErrorCatalog.INSUFFICIENT_STOCK,
                details={"field": "quantity", "available": current, "requested": quantity},
            )
        return resulting
    if movement_type == "adjust":
        if new_stock is None or not 0 <= new_stock <= INTEGER_MAX:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"errors": [_error("new_stock", f"new_stock must be between 0 and {INTEGER_MAX}", "value_error")]},
            )
        return new_stock
    raise AppError(
        ErrorCatalog.VALIDATION_ERROR,
        details={"errors": [_error("type", "type must be one of in, out, adjust", "literal_error")]},
    )


class StockMovementService:
    def __init__(self, db, *, search: ProductSearch | None = None, max_attempts: int | None = None):
        self.db = db
        self.search = search
        self.repo = StockMovementRepository(db)
        self.max_attempts = max(1, max_attempts or settings.STOCK_MOVEMENT_MAX_ATTEMPTS)

    def apply(self, command: MovementCommand, context: RequestContext) -> MovementResult:
        for attempt in range(1, self.max_attempts + 1):
            try:
                movement = self._apply_once(command, context)
            except AppError as exc:
                self.db.rollback()
                if exc.error is ErrorCatalog.INSUFFICIENT_STOCK:
                    metrics.increment_stock_movement_rejection("insufficient_stock")
                elif exc.error is ErrorCatalog.PRODUCT_NOT_FOUND:
                    metrics.increment_stock_movement_rejection("product_not_found")
                elif exc.error is ErrorCatalog.VALIDATION_ERROR:
                    metrics.increment_stock_movement_rejection("validation")
                raise
            except Exception:
                self.db.rollback()
                raise
            if movement is None:
                self.db.rollback()
                metrics.increment_stock_movement_conflict()
                log_json(
                    logger,
                    {
                        "event": "stock_movement_conflict",
                        "product_id": command.product_id,
                        "type": command.type,
                        "attempt": attempt,
                        "trace_id": context.trace_id,
                    },
                    level=logging.WARNING,
                )
                continue

            self.db.commit()
            product = self.db.get(Product, command.product_id, populate_existing=True)
            if self.search is not None:
                self.search.index(product)
            metrics.increment_stock_movement(command.type)
            log_json(
                logger,
                {
                    "event": "stock_movement_applied",
                    "movement_id": movement.id,
                    "product_id": command.product_id,
                    "type": command.type,
                    "previous_stock": movement.previous_stock,
                    "resulting_stock": movement.resulting_stock,
                    "actor_id": context.actor_id,
                    "attempt": attempt,
                    "trace_id": context.trace_id,
                },
            )
            return MovementResult(product=product, movement=movement, attempts=attempt)

        metrics.increment_stock_movement_rejection("conflict")
        raise AppError(
            ErrorCatalog.STOCK_CONFLICT,
            details={"product_id": command.product_id, "attempts": self.max_attempts},
        )

    def _apply_once(self, command: MovementCommand, context: RequestContext) -> StockMovement | None:
        snapshot = self.repo.find_product_for_update(command.product_id)
        if snapshot is None:
            raise AppError(
                ErrorCatalog.PRODUCT_NOT_FOUND,
                details={"field": "product_id", "product_id": command.product_id},
            )
        resulting = compute_resulting_stock(
            command.type,
            snapshot.stock,
            quantity=command.quantity,
            new_stock=command.new_stock,
        )
        if not self.repo.compare_and_set_stock(
            product_id=snapshot.product_id,
            expected_stock=snapshot.stock,
            new_stock=resulting,
        ):
            return None
        return self.repo.append_movement(
            MovementDraft(
                product_id=snapshot.product_id,
                type=command.type,
                quantity=command.quantity,
                new_stock=command.new_stock,
                previous_stock=snapshot.stock,
                resulting_stock=resulting,
                user_id=context.actor_id,
                notes=command.notes,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                performed_at=datetime.utcnow(),
            )
        )

    def list_movements(self, *, product_id: int | None, page: int, per_page: int):
        return self.repo.list_movements(product_id=product_id, page=page, per_page=per_page)
