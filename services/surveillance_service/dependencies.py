# services/surveillance_service/dependencies.py

import random
from dataclasses import dataclass
from functools import lru_cache

from .config import settings
from .dashboard import DashboardService
from .live_feed import AsyncioScheduler, LiveFeedSimulator, MonitorLoop
from .metrics import MetricsProvider, build_metrics_provider
from .notifications import NotificationCenter
from .sources import RecordSource, build_record_source


@dataclass
class AppState:
    """Все долгоживущие объекты сервиса в одном месте."""
    source: RecordSource
    metrics: MetricsProvider
    dashboard: DashboardService
    notifications: NotificationCenter
    simulator: LiveFeedSimulator
    monitor: MonitorLoop


def build_app_state(source: RecordSource, metrics: MetricsProvider, scheduler=None,
                    rng: random.Random | None = None) -> AppState:
    simulator = LiveFeedSimulator(
        scheduler=scheduler or AsyncioScheduler(),
        metrics=metrics,
        rng=rng or random.Random(settings.METRICS_SEED),
        capacity=settings.FEED_CAPACITY,
        new_flag_delay=settings.NEW_FLAG_DELAY_SECONDS,
        signal_probability=settings.SIGNAL_PROBABILITY,
    )
    return AppState(
        source=source,
        metrics=metrics,
        dashboard=DashboardService(source, metrics, hotspot_limit=settings.HOTSPOT_LIMIT),
        notifications=NotificationCenter(limit=settings.NOTIFICATION_LIMIT),
        simulator=simulator,
        monitor=MonitorLoop(simulator, period=settings.MONITOR_PERIOD_SECONDS),
    )


@lru_cache(maxsize=None)
def get_app_state() -> AppState:
    """Зависимость FastAPI: единый AppState на процесс (подменяется в тестах)."""
    return build_app_state(build_record_source(), build_metrics_provider())
