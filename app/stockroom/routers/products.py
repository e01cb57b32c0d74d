from decimal import Decimal

from fastapi import APIRouter, Depends, Path, Query, Request, Response
from fastapi.responses import JSONResponse

from app.stockroom.core.config import settings
from app.stockroom.core.context import get_request_context
from app.stockroom.core.error_catalog import ErrorCatalog
from app.stockroom.core.metrics import metrics
from app.stockroom.db.models import INTEGER_MAX
from app.stockroom.db.session import get_db
from app.stockroom.schemas.errors import PRODUCT_ERROR_RESPONSES
from app.stockroom.schemas.products import (
    ProductCreateRequest,
    ProductDeleteResponse,
    ProductPageMeta,
    ProductPageResponse,
    ProductResponse,
    ProductSuggestResponse,
    ProductUpdateRequest,
    product_to_response,
)
from app.stockroom.services.idempotency import (
    IDEMPOTENCY_RESULT_HEADER,
    IdempotencyService,
    extract_idempotency_key,
)
from app.stockroom.services.products import ProductService
from app.stockroom.services.search.base import (
    ProductPage,
    ProductSearch,
    ProductSearchQuery,
    normalize_sort_direction,
)
from app.stockroom.services.search.resolver import get_product_search


router = APIRouter()

SEARCH_MODE_HEADER = "X-Search-Mode"
SUGGEST_MAX_LIMIT = 20


def clamp_per_page(per_page: int | None) -> int:
    if per_page is None:
        per_page = settings.PRODUCTS_DEFAULT_PAGE_SIZE
    return max(1, min(per_page, settings.PRODUCTS_MAX_PAGE_SIZE))


def _page_response(page: ProductPage) -> ProductPageResponse:
    return ProductPageResponse(
        meta=ProductPageMeta(
            page=page.page,
            per_page=page.per_page,
            total=page.total,
            last_page=page.last_page,
            sort_field=page.sort_field,
            sort_direction=page.sort_direction,
            mode=page.mode,
        ),
        rows=[product_to_response(row) for row in page.rows],
    )


def _run_search(db, search: ProductSearch, query: ProductSearchQuery, response: Response) -> ProductPageResponse:
    page = search.search(db, query)
    response.headers[SEARCH_MODE_HEADER] = page.mode
    if page.extra.get("fallback_from"):
        response.headers[f"{SEARCH_MODE_HEADER}-Fallback"] = page.extra["fallback_from"]
    return _page_response(page)


@router.get("/products", response_model=ProductPageResponse)
def list_products(
    response: Response,
    search: str | None = Query(None, max_length=255),
    sort_field: str = Query("created_at"),
    sort_direction: str = Query("desc"),
    page: int = Query(1, le=INTEGER_MAX),
    per_page: int | None = Query(None),
    is_active: bool | None = Query(None),
    brand: str | None = Query(None),
    model: str | None = Query(None),
    db=Depends(get_db),
    product_search: ProductSearch = Depends(get_product_search),
):
    query = ProductSearchQuery(
        q=(search or "").strip(),
        is_active=is_active,
        brand=brand,
        model=model,
        sort_field=sort_field,
        sort_direction=normalize_sort_direction(sort_direction),
        page=max(1, page),
        per_page=clamp_per_page(per_page),
    )
    return _run_search(db, product_search, query, response)


@router.get("/products/search", response_model=ProductPageResponse)
def search_products(
    response: Response,
    q: str | None = Query(None, max_length=255),
    search: str | None = Query(None, max_length=255),
    sort_field: str = Query("created_at"),
    sort_direction: str = Query("desc"),
    page: int = Query(1, le=INTEGER_MAX),
    per_page: int | None = Query(None),
    is_active: bool | None = Query(None),
    brand: str | None = Query(None),
    model: str | None = Query(None),
    category: str | None = Query(None),
    price_min: Decimal | None = Query(None, ge=0),
    price_max: Decimal | None = Query(None, ge=0),
    db=Depends(get_db),
    product_search: ProductSearch = Depends(get_product_search),
):
    query = ProductSearchQuery(
        q=(q if q is not None else search or "").strip(),
        is_active=is_active,
        brand=brand,
        model=model,
        category=category,
        price_min=price_min,
        price_max=price_max,
        sort_field=sort_field,
        sort_direction=normalize_sort_direction(sort_direction),
        page=max(1, page),
        per_page=clamp_per_page(per_page),
    )
    return _run_search(db, product_search, query, response)


@router.get("/products/suggest", response_model=ProductSuggestResponse)
def suggest_products(
    response: Response,
    q: str = Query("", max_length=255),
    per_page: int = Query(8),
    db=Depends(get_db),
    product_search: ProductSearch = Depends(get_product_search),
):
    q = q.strip()
    limit = max(1, min(per_page, SUGGEST_MAX_LIMIT))
    items = product_search.suggest(db, q, limit) if q else []
    response.headers[SEARCH_MODE_HEADER] = product_search.mode
    return ProductSuggestResponse(mode=product_search.mode, q=q, count=len(items), items=items)


@router.post(
    "/products",
    response_model=ProductResponse,
    status_code=201,
    responses=PRODUCT_ERROR_RESPONSES,
)
def create_product(
    request: Request,
    payload: ProductCreateRequest,
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

    product = ProductService(db, product_search).create(payload, context)
    body = product_to_response(product)
    if idempotency is not None:
        idempotency.record_success(status_code=201, response_body=body.model_dump(mode="json"))
    return body


@router.get("/products/{product_id}", response_model=ProductResponse, responses=PRODUCT_ERROR_RESPONSES)
def get_product(
    product_id: int = Path(le=INTEGER_MAX),
    db=Depends(get_db),
    product_search: ProductSearch = Depends(get_product_search),
):
    return product_to_response(ProductService(db, product_search).get(product_id))


@router.put("/products/{product_id}", response_model=ProductResponse, responses=PRODUCT_ERROR_RESPONSES)
def update_product(
    request: Request,
    payload: ProductUpdateRequest,
    product_id: int = Path(le=INTEGER_MAX),
    db=Depends(get_db),
    product_search: ProductSearch = Depends(get_product_search),
):
    product = ProductService(db, product_search).update(product_id, payload, get_request_context(request))
    return product_to_response(product)


@router.delete("/products/{product_id}", response_model=ProductDeleteResponse, responses=PRODUCT_ERROR_RESPONSES)
def delete_product(
    request: Request,
    product_id: int = Path(le=INTEGER_MAX),
    db=Depends(get_db),
    product_search: ProductSearch = Depends(get_product_search),
):
    ProductService(db, product_search).delete(product_id, get_request_context(request))
    return ProductDeleteResponse(deleted=True)
