import math

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.stockroom.core.config import settings
from app.stockroom.core.context import get_request_context
from app.stockroom.core.error_catalog import ErrorCatalog
from app.stockroom.core.metrics import metrics
from app.stockroom.db.models import INTEGER_MAX
from app.stockroom.db.session import get_db
from app.stockroom.schemas.errors import MOVEMENT_ERROR_RESPONSES
from app.stockroom.schemas.products import product_to_response
from app.stockroom.schemas.stock_movements import (
    StockMovementCreateRequest,
    StockMovementCreateResponse,
    StockMovementPageMeta,
    StockMovementPageResponse,
    movement_to_response,
)
from app.stockroom.services.idempotency import (
    IDEMPOTENCY_RESULT_HEADER,
    IdempotencyService,
    extract_idempotency_key,
)
from app.stockroom.services.search.base import ProductSearch
from app.stockroom.services.search.resolver import get_product_search
from app.stockroom.services.stock_movements import StockMovementService, validate_movement


router = APIRouter()


@router.post(
    "/stock-movements",
    response_model=StockMovementCreateResponse,
    status_code=201,
    responses=MOVEMENT_ERROR_RESPONSES,
)
def create_stock_movement(
    request: Request,
    payload: StockMovementCreateRequest,
    db=Depends(get_db),
    product_search: ProductSearch = Depends(get_product_search),
):
    context = get_request_context(request)
    idempotency = None
    idempotency_key = extract_idempotency_key(request.headers)
    if idempotency_key:
        idempotency, replay = IdempotencyService(db).start(
            endpoint=str(request.url.path),
            method=request.method,
            idempotency_key=idempotency_key,
            request_hash=IdempotencyService.fingerprint(payload.model_dump(mode="json")),
        )
        if replay:
            metrics.increment_idempotency_replay()
            return JSONResponse(
                status_code=replay.status_code,
                content=replay.response_body,
                headers={IDEMPOTENCY_RESULT_HEADER: ErrorCatalog.IDEMPOTENCY_REPLAY.code},
            )
        request.state.idempotency = idempotency

    command = validate_movement(payload)
    result = StockMovementService(db, search=product_search).apply(command, context)
    body = StockMovementCreateResponse(
        product=product_to_response(result.product),
        movement=movement_to_response(result.movement),
    )
    if idempotency is not None:
        idempotency.record_success(status_code=201, response_body=body.model_dump(mode="json"))
    return body


@router.get("/stock-movements", response_model=StockMovementPageResponse)
def list_stock_movements(
    product_id: int | None = Query(None, ge=1, le=INTEGER_MAX),
    page: int = Query(1, ge=1, le=INTEGER_MAX),
    per_page: int | None = Query(None, ge=1),
    db=Depends(get_db),
):
    per_page = min(per_page or settings.PRODUCTS_DEFAULT_PAGE_SIZE, settings.PRODUCTS_MAX_PAGE_SIZE)
    rows, total = StockMovementService(db).list_movements(product_id=product_id, page=page, per_page=per_page)
    return StockMovementPageResponse(
        meta=StockMovementPageMeta(
            page=page,
            per_page=per_page,
            total=total,
            last_page=max(1, math.ceil(total / per_page)),
            product_id=product_id,
        ),
        rows=[movement_to_response(row) for row in rows],
    )
