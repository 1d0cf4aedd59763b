from typing import Optional

from fastapi import APIRouter, Depends, Query

from kts_office.dependencies.services import get_actor, get_analytics_service
from kts_office.routes.errors import to_http_error
from kts_office.schemas.analytics import DashboardResponse, PageViewRequest, TrafficResponse
from kts_office.services import AnalyticsService
from kts_office.services.exceptions import ServiceError
from kts_office.services.permissions import AdminActor

router = APIRouter()


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    days: int = Query(30, ge=1, le=366),
    service: AnalyticsService = Depends(get_analytics_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.dashboard(actor, days)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.get("/traffic", response_model=TrafficResponse)
async def traffic(
    days: int = Query(7, ge=1, le=366),
    service: AnalyticsService = Depends(get_analytics_service),
    actor: Optional[AdminActor] = Depends(get_actor),
):
    try:
        return await service.traffic(actor, days)
    except ServiceError as exc:
        raise to_http_error(exc) from exc


@router.post("/page-views", status_code=202)
async def record_page_view(
    req: PageViewRequest,
    service: AnalyticsService = Depends(get_analytics_service),
):
    try:
        await service.record_page_view(req)
    except ServiceError as exc:
        raise to_http_error(exc) from exc
    return {"status": "recorded"}
