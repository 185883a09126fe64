# services/surveillance_service/metrics.py

import random
import statistics
from collections import deque
from datetime import datetime, timedelta
from typing import Protocol, Sequence

from .config import settings
from .schemas import FeedEntry, Signal, SystemHealth, utc_date

# Значения-заглушки исходного дашборда
REFERENCE_RESPONSE_TIME_SCORE = 85.0
REFERENCE_ENGAGEMENT_SCORE = 70.0
REFERENCE_AVG_RESPONSE_SECONDS = 2.3
REFERENCE_ANOMALY_MIN = 0.1
REFERENCE_ANOMALY_MAX = 0.4


class MetricsProvider(Protocol):
    """
    Шов между аналитикой и измерениями, которых в хранилище нет:
    аномальность дня, скорость ответа, вовлечённость, сигналы в минуту,
    здоровье системы.
    """

    def record_fetch_latency(self, seconds: float) -> None: ...

    def anomaly_score(self, daily_totals: Sequence[int], index: int) -> float: ...

    def response_time_score(self) -> float: ...

    def engagement_score(self, signals: Sequence[Signal], now: datetime) -> float: ...

    def average_response_time(self) -> float | None: ...

    def signals_per_minute(self, entries: Sequence[FeedEntry], now: datetime) -> int: ...

    def system_health(self, signals_per_minute: int) -> SystemHealth: ...


class StaticMetricsProvider:
    """Детерминированная заглушка: фиксированные значения, удобна для тестов."""

    def __init__(self, anomaly: float = REFERENCE_ANOMALY_MIN,
                 response_time: float = REFERENCE_RESPONSE_TIME_SCORE,
                 engagement: float = REFERENCE_ENGAGEMENT_SCORE,
                 per_minute: int = 1,
                 health: SystemHealth = SystemHealth.HEALTHY):
        self.anomaly = anomaly
        self.response_time = response_time
        self.engagement = engagement
        self.per_minute = per_minute
        self.health = health

    def record_fetch_latency(self, seconds: float) -> None:
        pass

    def anomaly_score(self, daily_totals: Sequence[int], index: int) -> float:
        return self.anomaly

    def response_time_score(self) -> float:
        return self.response_time

    def engagement_score(self, signals: Sequence[Signal], now: datetime) -> float:
        return self.engagement

    def average_response_time(self) -> float | None:
        return REFERENCE_AVG_RESPONSE_SECONDS

    def signals_per_minute(self, entries: Sequence[FeedEntry], now: datetime) -> int:
        return self.per_minute

    def system_health(self, signals_per_minute: int) -> SystemHealth:
        return self.health


class DemoMetricsProvider(StaticMetricsProvider):
    """
    Поведение исходного демо: случайный индикатор аномалии в [0.1, 0.4),
    случайный gauge сигналов в минуту и редкий warning.
    rng можно передать с seed для воспроизводимости.
    """

    def __init__(self, rng: random.Random | None = None,
                 warning_probability: float = 0.1):
        super().__init__()
        self.rng = rng or random.Random()
        self.warning_probability = warning_probability

    def anomaly_score(self, daily_totals: Sequence[int], index: int) -> float:
        return self.rng.uniform(REFERENCE_ANOMALY_MIN, REFERENCE_ANOMALY_MAX)

    def signals_per_minute(self, entries: Sequence[FeedEntry], now: datetime) -> int:
        return self.rng.randint(1, 8)

    def system_health(self, signals_per_minute: int) -> SystemHealth:
        if self.rng.random() < self.warning_probability:
            return SystemHealth.WARNING
        return SystemHealth.HEALTHY


class ObservedMetricsProvider:
    """
    Метрики по реальным наблюдениям:
      - anomaly: отклонение дня от среднего предыдущих дней окна
      - response time: по измеренной задержке выборки из хранилища
      - engagement: доля дней последней недели, когда приходили сигналы
      - signals/minute: записи ленты за последние 60 секунд
    """

    def __init__(self, reference_latency: float = 5.0, warning_threshold: int = 8,
                 history: int = 20):
        self.reference_latency = reference_latency
        self.warning_threshold = warning_threshold
        self._latencies: deque[float] = deque(maxlen=history)

    def record_fetch_latency(self, seconds: float) -> None:
        self._latencies.append(max(0.0, seconds))

    def anomaly_score(self, daily_totals: Sequence[int], index: int) -> float:
        previous = list(daily_totals[:index])
        if not previous:
            return 0.0
        mean = statistics.fmean(previous)
        spread = statistics.pstdev(previous) if len(previous) > 1 else 0.0
        deviation = abs(daily_totals[index] - mean) / (mean + spread + 1.0)
        return min(1.0, deviation)

    def average_response_time(self) -> float | None:
        if not self._latencies:
            return None
        return statistics.fmean(self._latencies)

    def response_time_score(self) -> float:
        avg = self.average_response_time()
        if avg is None:
            return 0.0
        return max(0.0, min(100.0, 100.0 * (1.0 - avg / self.reference_latency)))

    def engagement_score(self, signals: Sequence[Signal], now: datetime) -> float:
        today = utc_date(now)
        days = {utc_date(s.created_at) for s in signals if timedelta(0) <= today - utc_date(s.created_at) < timedelta(days=7)}
        return len(days) / 7 * 100

    def signals_per_minute(self, entries: Sequence[FeedEntry], now: datetime) -> int:
        cutoff = now - timedelta(minutes=1)
        return sum(1 for e in entries if cutoff < e.timestamp <= now)

    def system_health(self, signals_per_minute: int) -> SystemHealth:
        if signals_per_minute >= self.warning_threshold:
            return SystemHealth.WARNING
        return SystemHealth.HEALTHY


def build_metrics_provider() -> MetricsProvider:
    """Создаёт поставщика по settings.METRICS_PROVIDER."""
    kind = settings.METRICS_PROVIDER.lower()
    if kind == "observed":
        return ObservedMetricsProvider(
            reference_latency=settings.REQUEST_TIMEOUT,
            warning_threshold=settings.SIGNALS_PER_MINUTE_WARNING,
        )
    if kind == "demo":
        return DemoMetricsProvider(
            rng=random.Random(settings.METRICS_SEED),
            warning_probability=settings.WARNING_PROBABILITY,
        )
    if kind == "static":
        return StaticMetricsProvider()
    raise ValueError(f"Unknown METRICS_PROVIDER: {settings.METRICS_PROVIDER!r}")
