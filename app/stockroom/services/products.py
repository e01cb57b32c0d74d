import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from app.stockroom.core.context import RequestContext
from app.stockroom.core.error_catalog import AppError, ErrorCatalog
from app.stockroom.core.logging import log_json
from app.stockroom.db.models import Product
from app.stockroom.repos.products import ProductRepository
from app.stockroom.repos.stock_movements import MovementDraft, StockMovementRepository
from app.stockroom.schemas.products import ProductCreateRequest, ProductUpdateRequest
from app.stockroom.services.search.base import ProductSearch

logger = logging.getLogger(__name__)

OPENING_STOCK_NOTE = "Opening stock"


class ProductService:
    def __init__(self, db, search: ProductSearch):
        self.db = db
        self.search = search
        self.repo = ProductRepository(db)

    def get(self, product_id: int) -> Product:
        product = self.repo.get(product_id)
        if product is None:
            raise AppError(ErrorCatalog.PRODUCT_NOT_FOUND, details={"product_id": product_id})
        return product

    def create(self, payload: ProductCreateRequest, context: RequestContext) -> Product:
        self._ensure_sku_available(payload.sku)
        now = datetime.utcnow()
        product = Product(
            sku=payload.sku,
            name=payload.name,
            brand=payload.brand,
            model=payload.model,
            barcode=payload.barcode,
            price=payload.price,
            stock=0,
            is_active=payload.is_active,
            product_metadata=payload.metadata,
            created_at=now,
            updated_at=now,
        )
        try:
            self.repo.add(product)
            if payload.stock:
                self._record_opening_stock(product, payload.stock, context)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise AppError(ErrorCatalog.SKU_ALREADY_EXISTS, details={"sku": payload.sku}) from exc
        self.db.refresh(product)
        log_json(logger, {"event": "product_created", "product_id": product.id, "sku": product.sku, "trace_id": context.trace_id})
        self.search.index(product)
        return product

    def _record_opening_stock(self, product: Product, stock: int, context: RequestContext) -> None:
        movements = StockMovementRepository(self.db)
        movements.compare_and_set_stock(product_id=product.id, expected_stock=0, new_stock=stock)
        movements.append_movement(
            MovementDraft(
                product_id=product.id,
                type="adjust",
                quantity=0,
                new_stock=stock,
                previous_stock=0,
                resulting_stock=stock,
                user_id=context.actor_id,
                notes=OPENING_STOCK_NOTE,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                performed_at=datetime.utcnow(),
            )
        )

    def update(self, product_id: int, payload: ProductUpdateRequest, context: RequestContext) -> Product:
        product = self.get(product_id)
        changes = payload.model_dump(exclude_unset=True)
        if "sku" in changes and changes["sku"] != product.sku:
            self._ensure_sku_available(changes["sku"])
        if "metadata" in changes:
            changes["product_metadata"] = changes.pop("metadata")
        for field, value in changes.items():
            setattr(product, field, value)
        product.updated_at = datetime.utcnow()
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if "sku" not in changes:
                raise
            raise AppError(ErrorCatalog.SKU_ALREADY_EXISTS, details={"sku": changes["sku"]}) from exc
        self.db.refresh(product)
        log_json(logger, {"event": "product_updated", "product_id": product.id, "fields": sorted(changes), "trace_id": context.trace_id})
        self.search.index(product)
        return product

    def delete(self, product_id: int, context: RequestContext) -> None:
        product = self.get(product_id)
        self.repo.soft_delete(product)
        self.db.commit()
        log_json(logger, {"event": "product_deleted", "product_id": product_id, "trace_id": context.trace_id})
        self.search.remove(product_id)

    def _ensure_sku_available(self, sku: str) -> None:
        # soft-deleted rows keep their sku
        if self.repo.get_by_sku(sku) is not None:
            raise AppError(ErrorCatalog.SKU_ALREADY_EXISTS, details={"sku": sku})
