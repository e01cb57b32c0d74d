from fastapi import APIRouter

from app.stockroom.core.config import settings
from app.stockroom.routers.health import router as health_router
from app.stockroom.routers.metrics import router as metrics_router
from app.stockroom.routers.products import router as products_router
from app.stockroom.routers.stock_movements import router as stock_movements_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(products_router, tags=["products"])
api_router.include_router(stock_movements_router, tags=["stock-movements"])
if settings.METRICS_ENABLED:
    api_router.include_router(metrics_router, tags=["ops"])
