from fastapi import Request

from app.stockroom.core.config import Settings
from app.stockroom.services.search.base import ProductSearch
from app.stockroom.services.search.database import DatabaseProductSearch
from app.stockroom.services.search.typesense import TypesenseProductSearch

TYPESENSE_MODE = "typesense"
DATABASE_MODE = "database"


def current_mode(config: Settings) -> str:
    mode = (config.SEARCH_MODE or "").strip().lower()
    return TYPESENSE_MODE if mode == TYPESENSE_MODE else DATABASE_MODE


def resolve_product_search(config: Settings, *, session=None) -> ProductSearch:
    if current_mode(config) == TYPESENSE_MODE:
        return TypesenseProductSearch(
            base_url=config.TYPESENSE_URL,
            api_key=config.TYPESENSE_API_KEY,
            collection=config.TYPESENSE_COLLECTION,
            timeout=config.TYPESENSE_TIMEOUT_SEC,
            session=session,
        )
    return DatabaseProductSearch()


def get_product_search(request: Request) -> ProductSearch:
    return request.app.state.product_search
