from fastapi import FastAPI

from app.stockroom.api import api_router
from app.stockroom.core.config import settings
from app.stockroom.core.errors import setup_exception_handlers
from app.stockroom.core.logging import configure_logging
from app.stockroom.middleware.observability import ObservabilityMiddleware
from app.stockroom.middleware.request_context import RequestContextMiddleware
from app.stockroom.middleware.trace import TraceIdMiddleware
from app.stockroom.services.search.resolver import resolve_product_search


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)
    app.state.product_search = resolve_product_search(settings)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(TraceIdMiddleware)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
