# services/surveillance_service/routers/analytics.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..config import settings
from ..dependencies import AppState, get_app_state
from ..errors import SourceFetchError
from ..schemas import (
    AnalyticsSnapshot,
    DashboardHealth,
    Hotspot,
    RiskFactor,
    SeverityCount,
    TimeBucket,
    TimeWindow,
    TrendBucket,
    TypeShare,
)
from ..utils.logging import setup_logging

logger = setup_logging()

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])


# ---------- Вспомогательные функции ----------


async def refresh_snapshot(state: AppState, window: TimeWindow) -> AnalyticsSnapshot:
    """Обновляет срез; недоступность хранилища → 503, прежний срез сохраняется."""
    try:
        return await state.dashboard.refresh(window)
    except SourceFetchError as e:
        raise HTTPException(status_code=503, detail=f"Record store unavailable: {e.source}")


# ---------- Эндпойнты ----------


@router.get("/summary", response_model=AnalyticsSnapshot)
async def get_summary(
    window: TimeWindow = TimeWindow(settings.DEFAULT_WINDOW),
    state: AppState = Depends(get_app_state),
):
    """Пересчитывает все представления разом."""
    return await refresh_snapshot(state, window)


@router.get("/snapshot", response_model=AnalyticsSnapshot)
async def get_last_snapshot(state: AppState = Depends(get_app_state)):
    """
    Последний построенный срез без обращения к хранилищу.
    Полезно, когда хранилище недоступно: отдаём устаревшие, но корректные данные.
    """
    if state.dashboard.snapshot is None:
        raise HTTPException(status_code=404, detail="No analytics snapshot yet")
    return state.dashboard.snapshot


@router.get("/health", response_model=DashboardHealth)
async def get_health(state: AppState = Depends(get_app_state)):
    return state.dashboard.health


@router.get("/trends", response_model=List[TrendBucket])
async def get_trends(
    window: TimeWindow = TimeWindow(settings.DEFAULT_WINDOW),
    state: AppState = Depends(get_app_state),
):
    return (await refresh_snapshot(state, window)).trends


@router.get("/severity", response_model=List[SeverityCount])
async def get_severity(
    window: TimeWindow = TimeWindow(settings.DEFAULT_WINDOW),
    state: AppState = Depends(get_app_state),
):
    return (await refresh_snapshot(state, window)).severity_distribution


@router.get("/hotspots", response_model=List[Hotspot])
async def get_hotspots(
    window: TimeWindow = TimeWindow(settings.DEFAULT_WINDOW),
    state: AppState = Depends(get_app_state),
):
    return (await refresh_snapshot(state, window)).hotspots


@router.get("/types", response_model=List[TypeShare])
async def get_type_breakdown(
    window: TimeWindow = TimeWindow(settings.DEFAULT_WINDOW),
    state: AppState = Depends(get_app_state),
):
    return (await refresh_snapshot(state, window)).type_breakdown


@router.get("/time-patterns", response_model=List[TimeBucket])
async def get_time_patterns(
    window: TimeWindow = TimeWindow(settings.DEFAULT_WINDOW),
    state: AppState = Depends(get_app_state),
):
    return (await refresh_snapshot(state, window)).time_patterns


@router.get("/risk", response_model=List[RiskFactor])
async def get_risk(
    window: TimeWindow = TimeWindow(settings.DEFAULT_WINDOW),
    state: AppState = Depends(get_app_state),
):
    """Вектор из шести факторов риска (для radar-диаграммы)."""
    return (await refresh_snapshot(state, window)).risk_assessment
