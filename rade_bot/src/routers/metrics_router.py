from fastapi import APIRouter, Depends

from rade_bot.src.core.app_state import get_metrics_service
from rade_bot.src.services.metrics_service import MetricsService

metrics_router = APIRouter()


@metrics_router.get("")
async def get_metrics(metrics: MetricsService = Depends(get_metrics_service)):
    return metrics.summary()


@metrics_router.delete("")
async def clear_metrics(metrics: MetricsService = Depends(get_metrics_service)):
    metrics.clear()
    return {"success": True, "message": "Métricas removidas."}
