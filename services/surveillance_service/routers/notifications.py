# services/surveillance_service/routers/notifications.py

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import AppState, get_app_state
from ..errors import SourceFetchError
from ..notifications import build_system_notices
from ..schemas import NotificationFeed, NotificationFilter
from ..sources import fetch_records
from ..utils.logging import setup_logging

logger = setup_logging()

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


# ---------- Вспомогательные функции ----------


async def merge_from_source(state: AppState) -> None:
    """
    Забирает alerts + events и пересобирает ленту уведомлений.
    Состояние прочтения при этом сохраняется (ключ: стабильный id).
    При недоступном хранилище прежняя лента остаётся, а центр уведомлений
    и live-монитор переходят в critical.
    """
    try:
        batch = await fetch_records(state.source, signals=False)
    except SourceFetchError as e:
        state.notifications.mark_failed(str(e))
        state.simulator.mark_disconnected(str(e))
        raise HTTPException(status_code=503, detail=f"Record store unavailable: {e.source}")

    state.metrics.record_fetch_latency(batch.elapsed)
    now = state.simulator.scheduler.now()
    state.notifications.merge(
        batch.alerts,
        batch.events,
        build_system_notices(now, state.simulator.status),
        rejected=len(batch.rejected),
        now=now,
    )


# ---------- Эндпойнты ----------


@router.get("", response_model=NotificationFeed)
async def get_notifications(
    filter: NotificationFilter = NotificationFilter.ALL,
    state: AppState = Depends(get_app_state),
):
    """Пересобирает ленту из хранилища и возвращает её с фильтром all / unread / high."""
    await merge_from_source(state)
    return state.notifications.view(filter)


@router.get("/feed", response_model=NotificationFeed)
async def get_feed(
    filter: NotificationFilter = NotificationFilter.ALL,
    state: AppState = Depends(get_app_state),
):
    """Текущая лента без обращения к хранилищу."""
    return state.notifications.view(filter)


@router.post("/read-all", response_model=NotificationFeed)
async def mark_all_read(state: AppState = Depends(get_app_state)):
    state.notifications.mark_all_read()
    return state.notifications.view()


@router.post("/{notification_id}/read", response_model=NotificationFeed)
async def mark_read(notification_id: str, state: AppState = Depends(get_app_state)):
    """Повторная отметка и неизвестный id не ошибка: просто ничего не меняется."""
    state.notifications.mark_read(notification_id)
    return state.notifications.view()
