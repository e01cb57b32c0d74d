from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

import requests

from app.stockroom.core.metrics import metrics
from app.stockroom.db.models import Product
from app.stockroom.repos.products import ProductRepository
from app.stockroom.schemas.products import ProductSuggestion
from app.stockroom.services.search.base import ProductPage, ProductSearchQuery
from app.stockroom.services.search.database import DatabaseProductSearch

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-TYPESENSE-API-KEY"
QUERY_BY = "name,sku,brand,model,barcode"
HIGHLIGHT_FIELDS = "name,sku,brand,model"
ALLOWED_SORTS = {"relevance", "created_at", "updated_at", "price", "stock", "rating"}
DEFAULT_SORT_FIELD = "created_at"

_SEARCH_ERRORS = (requests.RequestException, ValueError, KeyError, TypeError)


def _quote(value: str) -> str:
    return '"' + value.replace('"', '\\"') + '"'


def _timestamp(value) -> int:
    return int(value.timestamp()) if value is not None else 0


def product_document(product: Product) -> dict:
    return {
        "id": str(product.id),
        "sku": product.sku or "",
        "name": product.name or "",
        "brand": product.brand or "",
        "model": product.model or "",
        "barcode": product.barcode or "",
        "price": float(product.price or 0),
        "stock": int(product.stock or 0),
        "is_active": bool(product.is_active),
        "created_at": _timestamp(product.created_at),
        "updated_at": _timestamp(product.updated_at),
        "metadata": product.product_metadata if isinstance(product.product_metadata, dict) else {},
    }


def build_filter_by(query: ProductSearchQuery) -> str | None:
    parts = []
    if query.is_active is not None:
        parts.append(f"is_active:={'true' if query.is_active else 'false'}")
    if query.brand:
        parts.append(f"brand:={_quote(query.brand)}")
    if query.model:
        parts.append(f"model:={_quote(query.model)}")
    if query.category:
        parts.append(f"metadata.category:={_quote(query.category)}")
    if query.price_min is not None:
        parts.append(f"price:>={query.price_min}")
    if query.price_max is not None:
        parts.append(f"price:<={query.price_max}")
    return " && ".join(parts) or None


def resolve_sort(sort_field: str, sort_direction: str) -> tuple[str, str | None]:
    """Maps a requested sort onto the engine's ``sort_by`` value.

    Relevance ordering sends no ``sort_by`` so the engine ranks by text match.
    """
    field = sort_field if sort_field in ALLOWED_SORTS else DEFAULT_SORT_FIELD
    if field == "relevance":
        return field, None
    engine_field = "metadata.rating" if field == "rating" else field
    return field, f"{engine_field}:{sort_direction}"


class TypesenseProductSearch:
    mode = "typesense"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        collection: str = "products",
        timeout: float = 2.0,
        session: requests.Session | None = None,
        fallback: DatabaseProductSearch | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.collection = collection
        self.timeout = timeout
        self.session = session or requests.Session()
        self.fallback = fallback or DatabaseProductSearch()

    def _url(self, suffix: str) -> str:
        return f"{self.base_url}/collections/{self.collection}/documents{suffix}"

    def _headers(self) -> dict[str, str]:
        return {API_KEY_HEADER: self.api_key, "Accept": "application/json"}

    def _search_request(self, params: dict) -> dict:
        response = self.session.get(
            self._url("/search"),
            params=params,
            headers=self._headers(),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def search(self, db, query: ProductSearchQuery) -> ProductPage:
        sort_field, sort_by = resolve_sort(query.sort_field, query.sort_direction)
        params = {
            "q": query.q or "*",
            "query_by": QUERY_BY,
            "page": query.page,
            "per_page": query.per_page,
        }
        filter_by = build_filter_by(query)
        if filter_by:
            params["filter_by"] = filter_by
        if sort_by:
            params["sort_by"] = sort_by

        try:
            body = self._search_request(params)
            product_ids = [int(hit["document"]["id"]) for hit in body.get("hits", [])]
            total = int(body.get("found", len(product_ids)))
        except _SEARCH_ERRORS as exc:
            return self._fall_back(db, query, exc)

        return ProductPage(
            rows=ProductRepository(db).get_many(product_ids),
            total=total,
            page=query.page,
            per_page=query.per_page,
            sort_field=sort_field,
            sort_direction=query.sort_direction,
            mode=self.mode,
        )

    def _fall_back(self, db, query: ProductSearchQuery, exc: Exception) -> ProductPage:
        logger.warning(
            "Typesense search failed, falling back to database search",
            extra={"error": str(exc), "exception": exc.__class__.__name__, "q": query.q},
        )
        metrics.increment_search_fallback()
        page = self.fallback.search(db, query)
        page.extra["fallback_from"] = self.mode
        return page

    def suggest(self, db, q: str, limit: int) -> list[ProductSuggestion]:
        if not q:
            return self.fallback.suggest(db, q, limit)
        params = {
            "q": q,
            "query_by": QUERY_BY,
            "per_page": limit,
            "page": 1,
            "highlight_fields": HIGHLIGHT_FIELDS,
            "highlight_start_tag": "<mark>",
            "highlight_end_tag": "</mark>",
        }
        try:
            body = self._search_request(params)
            return [self._suggestion_from_hit(hit) for hit in body.get("hits", [])]
        except _SEARCH_ERRORS as exc:
            logger.warning(
                "Typesense suggest failed, falling back to database search",
                extra={"error": str(exc), "exception": exc.__class__.__name__, "q": q},
            )
            metrics.increment_search_fallback()
            return self.fallback.suggest(db, q, limit)

    @staticmethod
    def _suggestion_from_hit(hit: dict) -> ProductSuggestion:
        doc = hit.get("document") or {}
        highlights = {}
        for item in hit.get("highlights") or []:
            field = item.get("field")
            snippet = item.get("snippet") or item.get("value")
            if isinstance(field, str) and field and isinstance(snippet, str):
                highlights[field] = snippet
        metadata = doc.get("metadata") if isinstance(doc.get("metadata"), dict) else {}
        image_url = metadata.get("image_url")
        price = doc.get("price")
        try:
            price = Decimal(str(round(float(price), 2))) if price is not None else None
        except (InvalidOperation, ValueError):
            price = None
        return ProductSuggestion(
            id=int(doc["id"]),
            name=doc.get("name") or "",
            sku=doc.get("sku") or "",
            brand=doc.get("brand") or None,
            model=doc.get("model") or None,
            price=price,
            stock=doc.get("stock"),
            image_url=image_url if isinstance(image_url, str) else None,
            highlight={name: highlights.get(name) for name in HIGHLIGHT_FIELDS.split(",")},
        )

    def index(self, product: Product) -> None:
        """Best-effort document upsert; the database stays the source of truth."""
        try:
            response = self.session.post(
                self._url(""),
                params={"action": "upsert"},
                json=product_document(product),
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning(
                "Failed to index product document",
                extra={"product_id": product.id, "error": str(exc)},
            )

    def remove(self, product_id: int) -> None:
        try:
            response = self.session.delete(
                self._url(f"/{product_id}"),
                headers=self._headers(),
                timeout=self.timeout,
            )
            if response.status_code != 404:
                response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning(
                "Failed to remove product document",
                extra={"product_id": product_id, "error": str(exc)},
            )
