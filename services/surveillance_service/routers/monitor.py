# services/surveillance_service/routers/monitor.py

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import AppState, get_app_state
from ..errors import SourceFetchError
from ..live_feed import load_live_feed
from ..schemas import MonitorState
from ..utils.logging import setup_logging

logger = setup_logging()

router = APIRouter(prefix="/api/v1/monitor", tags=["monitor"])


def _state(state: AppState) -> MonitorState:
    return state.simulator.state(monitoring=state.monitor.running)


@router.get("/state", response_model=MonitorState)
async def get_state(state: AppState = Depends(get_app_state)):
    """Лента последних сигналов, SystemStatus и live-статистика."""
    return _state(state)


@router.post("/start", response_model=MonitorState)
async def start_monitoring(state: AppState = Depends(get_app_state)):
    """Включает периодические тики. Повторный вызов ничего не меняет."""
    state.monitor.start()
    return _state(state)


@router.post("/stop", response_model=MonitorState)
async def stop_monitoring(state: AppState = Depends(get_app_state)):
    await state.monitor.stop()
    return _state(state)


@router.post("/tick", response_model=MonitorState)
async def manual_tick(state: AppState = Depends(get_app_state)):
    """Один внеочередной тик, независимо от того, включён ли мониторинг."""
    entry = state.simulator.tick()
    if entry is not None:
        logger.info(f"🛰️ Manual tick produced {entry.id}")
    return _state(state)


@router.post("/reload", response_model=MonitorState)
async def reload_feed(state: AppState = Depends(get_app_state)):
    """Перечитывает ленту из хранилища (разовая загрузка)."""
    try:
        await load_live_feed(state.source, state.simulator)
    except SourceFetchError as e:
        raise HTTPException(status_code=503, detail=f"Record store unavailable: {e.source}")
    return _state(state)
