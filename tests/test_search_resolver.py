import pytest

from app.stockroom.core.config import Settings
from app.stockroom.services.search.database import DatabaseProductSearch
from app.stockroom.services.search.resolver import current_mode, resolve_product_search
from app.stockroom.services.search.typesense import TypesenseProductSearch


@pytest.mark.parametrize("mode", ["", "database", "scout", "TYPESENSE-ish"])
def test_non_typesense_modes_resolve_to_database(mode):
    config = Settings(SEARCH_MODE=mode)

    assert current_mode(config) == "database"
    assert isinstance(resolve_product_search(config), DatabaseProductSearch)


@pytest.mark.parametrize("mode", ["typesense", " Typesense "])
def test_typesense_mode_resolves_to_engine(mode):
    config = Settings(
        SEARCH_MODE=mode,
        TYPESENSE_URL="http://search.internal:8108",
        TYPESENSE_API_KEY="key",
        TYPESENSE_COLLECTION="catalog",
        TYPESENSE_TIMEOUT_SEC=0.5,
    )

    backend = resolve_product_search(config)

    assert isinstance(backend, TypesenseProductSearch)
    assert backend.mode == "typesense"
    assert backend.base_url == "http://search.internal:8108"
    assert backend.collection == "catalog"
    assert backend.timeout == 0.5


def test_app_resolves_backend_once_at_startup(client):
    backend = client.app.state.product_search

    client.get("/products")
    client.get("/products/search")

    assert client.app.state.product_search is backend
    assert backend.mode == "database"
