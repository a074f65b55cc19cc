from fastapi import APIRouter

from app.stockbox.core.config import settings
from app.stockbox.routers.health import router as health_router
from app.stockbox.routers.inbound import router as inbound_router
from app.stockbox.routers.ledger import router as ledger_router
from app.stockbox.routers.metrics import router as metrics_router
from app.stockbox.routers.outbound import router as outbound_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(inbound_router, tags=["inbound"])
api_router.include_router(outbound_router, tags=["outbound"])
api_router.include_router(ledger_router, tags=["ledger"])
if settings.METRICS_ENABLED:
    api_router.include_router(metrics_router, tags=["ops"])
