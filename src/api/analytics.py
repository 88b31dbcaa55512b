"""Analytics endpoint.

GET /v1/analytics - dashboard metrics computed from every collection
"""

from fastapi import APIRouter, Depends

from src.api.dependencies import get_analytics
from src.engine.analytics import AnalyticsEngine

router = APIRouter(prefix="/v1/analytics", tags=["analytics"])


@router.get("")
async def get_metrics(analytics: AnalyticsEngine = Depends(get_analytics)) -> dict:
    return analytics.metrics.to_dict()
