# services/surveillance_service/dashboard.py

from datetime import datetime, timezone
from typing import Callable, Optional

from loguru import logger

from .analytics import build_analytics_snapshot
from .errors import SourceFetchError
from .metrics import MetricsProvider
from .schemas import AnalyticsSnapshot, DashboardHealth, SystemHealth, TimeWindow
from .sources import RecordSource, fetch_records


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DashboardService:
    """
    Держит последний срез аналитики и состояние подключения к хранилищу.

    Каждое обновление строит новый AnalyticsSnapshot и заменяет ссылку
    целиком. При SourceFetchError прежний срез остаётся (устаревший, но
    корректный), а здоровье переходит в critical.
    """

    def __init__(self, source: RecordSource, metrics: MetricsProvider,
                 hotspot_limit: int = 10, clock: Callable[[], datetime] = utcnow):
        self.source = source
        self.metrics = metrics
        self.hotspot_limit = hotspot_limit
        self.clock = clock
        self._snapshot: Optional[AnalyticsSnapshot] = None
        self._health = DashboardHealth(is_connected=True, system_health=SystemHealth.HEALTHY)

    @property
    def snapshot(self) -> Optional[AnalyticsSnapshot]:
        return self._snapshot

    @property
    def health(self) -> DashboardHealth:
        return self._health

    async def refresh(self, window: TimeWindow | str) -> AnalyticsSnapshot:
        window = TimeWindow(window)
        logger.info(f"📊 Refreshing analytics (window={window.value})")

        try:
            batch = await fetch_records(self.source, alerts=False)
        except SourceFetchError as e:
            logger.error(f"❌ Analytics refresh aborted, keeping previous snapshot: {e}")
            self._health = self._health.model_copy(update={
                "is_connected": False,
                "system_health": SystemHealth.CRITICAL,
                "last_error": str(e),
            })
            raise

        self.metrics.record_fetch_latency(batch.elapsed)
        now = self.clock()
        snapshot = build_analytics_snapshot(
            batch.signals,
            batch.events,
            window,
            now,
            self.metrics,
            hotspot_limit=self.hotspot_limit,
            rejected_records=len(batch.rejected),
        )

        self._snapshot = snapshot
        self._health = DashboardHealth(
            is_connected=True,
            system_health=SystemHealth.WARNING if batch.rejected else SystemHealth.HEALTHY,
            last_refresh_at=now,
            last_error=f"{len(batch.rejected)} malformed records skipped" if batch.rejected else None,
        )

        logger.info(
            f"📈 Analytics refreshed | signals={len(batch.signals)}, events={len(batch.events)}, "
            f"hotspots={len(snapshot.hotspots)}, rejected={len(batch.rejected)}"
        )
        return snapshot
