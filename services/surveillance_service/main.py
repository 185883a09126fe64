# services/surveillance_service/main.py

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from .config import settings
from .dependencies import get_app_state
from .errors import SourceFetchError
from .live_feed import load_live_feed
from .routers import analytics as analytics_router
from .routers import monitor as monitor_router
from .routers import notifications as notifications_router
from .utils.logging import setup_logging


# --- Логирование ---
logger = setup_logging()

# --- Приложение FastAPI ---
app = FastAPI(
    title=settings.SERVICE_NAME,
    version=settings.VERSION,
    description=(
        "Surveillance Analytics Service — тренды сигналов, горячие точки, "
        "оценка риска, уведомления и live-лента эпиднадзора."
    ),
)

# --- Метрики Prometheus ---
Instrumentator().instrument(app).expose(app, include_in_schema=False)


# --- События приложения ---
@app.on_event("startup")
async def startup_event():
    """
    Разовая загрузка live-ленты и запуск монитора.
    Недоступное хранилище не валит старт: лента помечается отключённой.
    """
    state = get_app_state()
    try:
        await load_live_feed(state.source, state.simulator)
    except SourceFetchError as e:
        logger.warning(f"⚠️ Initial live feed load failed: {e}")

    if settings.MONITOR_ENABLED:
        state.monitor.start()
    logger.info("🩺 surveillance_service started.")


@app.on_event("shutdown")
async def shutdown_event():
    await get_app_state().monitor.stop()
    logger.info("🩺 surveillance_service stopped.")


# --- Health & readiness ---
@app.get("/health", tags=["system"])
async def health():
    return {"status": "ok", "service": "surveillance_service"}


@app.get("/ready", tags=["system"])
async def ready():
    return {"status": "ready"}


@app.get("/", include_in_schema=False)
async def root():
    return {"message": "Surveillance Analytics Service is operational"}


# --- Бизнес-роутеры ---
app.include_router(analytics_router.router)
app.include_router(notifications_router.router)
app.include_router(monitor_router.router)
