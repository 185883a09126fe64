# services/surveillance_service/analytics.py

import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Sequence

from .metrics import MetricsProvider
from .schemas import (
    AnalyticsSnapshot,
    Event,
    EventStatus,
    Hotspot,
    KeyMetrics,
    RiskFactor,
    Severity,
    SeverityCount,
    Signal,
    TimeBucket,
    TimeWindow,
    TrendBucket,
    TypeShare,
    utc_date,
)

# Пороги уровня риска горячей точки (строго больше)
HOTSPOT_HIGH_THRESHOLD = 10
HOTSPOT_MEDIUM_THRESHOLD = 5

# Порядок факторов в векторе риска
RISK_FACTORS = (
    "Signal Volume",
    "Severity Level",
    "Geographic Spread",
    "Event Frequency",
    "Response Time",
    "Community Engagement",
)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def primary_region(location: str) -> str:
    """'Mumbai, Andheri' → 'Mumbai'."""
    return location.split(",")[0].strip()


def _trend_label(day) -> str:
    return f"{day.strftime('%b')} {day.day}"


# ---------- Тренды ----------


def build_signal_trends(
    signals: Sequence[Signal],
    window: TimeWindow | str,
    now: datetime,
    metrics: MetricsProvider,
) -> list[TrendBucket]:
    """\
    Дневные корзины за окно 1d / 7d / 30d, от старой к новой.

    День сигнала: календарная дата created_at в UTC. Сигналы вне окна
    (старше или из будущего) просто не попадают ни в одну корзину.
    """
    window = TimeWindow(window)
    today = utc_date(now)

    by_day: dict = {}
    for s in signals:
        by_day.setdefault(utc_date(s.created_at), []).append(s)

    days = [today - timedelta(days=offset) for offset in range(window.days - 1, -1, -1)]
    totals = [len(by_day.get(d, ())) for d in days]

    buckets: list[TrendBucket] = []
    for index, day in enumerate(days):
        day_signals = by_day.get(day, ())
        severities = Counter(s.severity for s in day_signals)
        buckets.append(
            TrendBucket(
                date=day,
                label=_trend_label(day),
                total=totals[index],
                high=severities[Severity.HIGH],
                medium=severities[Severity.MEDIUM],
                low=severities[Severity.LOW],
                anomaly=_clamp(metrics.anomaly_score(totals, index), 0.0, 1.0),
            )
        )
    return buckets


def build_severity_distribution(signals: Sequence[Signal]) -> list[SeverityCount]:
    counts = Counter(s.severity for s in signals)
    return [
        SeverityCount(severity=sev, label=sev.value.capitalize(), count=counts[sev])
        for sev in (Severity.HIGH, Severity.MEDIUM, Severity.LOW)
    ]


# ---------- Горячие точки ----------


def hotspot_risk(count: int) -> Severity:
    if count > HOTSPOT_HIGH_THRESHOLD:
        return Severity.HIGH
    if count > HOTSPOT_MEDIUM_THRESHOLD:
        return Severity.MEDIUM
    return Severity.LOW


def rank_location_hotspots(signals: Sequence[Signal], limit: int = 10) -> list[Hotspot]:
    """
    Группирует сигналы по первичному региону, сортирует по убыванию частоты.
    При равенстве сохраняется порядок первого появления (Counter помнит
    порядок вставки, sorted стабилен).
    """
    counts = Counter(primary_region(s.location) for s in signals)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [
        Hotspot(location=location, count=count, risk=hotspot_risk(count))
        for location, count in ranked[:limit]
    ]


# ---------- Типы сигналов ----------


def build_type_breakdown(signals: Sequence[Signal]) -> list[TypeShare]:
    total = len(signals)
    counts = Counter(s.type for s in signals)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [
        TypeShare(
            type=signal_type,
            count=count,
            percentage=_round_half_up(count / total * 100) if total else 0,
        )
        for signal_type, count in ranked
    ]


# ---------- Распределение по часам ----------


def build_time_patterns(signals: Sequence[Signal]) -> list[TimeBucket]:
    """24 корзины по часу created_at (в смещении самой записи)."""
    hours = [0] * 24
    for s in signals:
        hours[s.created_at.hour] += 1

    peak = max(hours)
    return [
        TimeBucket(
            hour=hour,
            label=f"{hour:02d}:00",
            signals=count,
            normalized=count / peak * 100 if peak else 0.0,
        )
        for hour, count in enumerate(hours)
    ]


# ---------- Оценка риска ----------


def estimate_risk_factors(
    signals: Sequence[Signal],
    events: Sequence[Event],
    metrics: MetricsProvider,
    now: datetime,
) -> list[RiskFactor]:
    """
    Вектор из шести факторов, каждый ограничен диапазоном [0, 100].
    Итоговый скаляр не считается, это решение слоя визуализации.
    """
    n = len(signals)
    high = sum(1 for s in signals if s.severity == Severity.HIGH)
    regions = {primary_region(s.location) for s in signals}

    values = (
        n / 100 * 100,
        high / n * 100 if n else 0.0,
        len(regions) * 10,
        len(events) * 5,
        metrics.response_time_score(),
        metrics.engagement_score(signals, now),
    )
    return [RiskFactor(factor=name, value=_clamp(v)) for name, v in zip(RISK_FACTORS, values)]


# ---------- Полный срез ----------


def build_analytics_snapshot(
    signals: Sequence[Signal],
    events: Sequence[Event],
    window: TimeWindow | str,
    now: datetime,
    metrics: MetricsProvider,
    hotspot_limit: int = 10,
    rejected_records: int = 0,
) -> AnalyticsSnapshot:
    window = TimeWindow(window)
    trends = build_signal_trends(signals, window, now, metrics)
    severity = build_severity_distribution(signals)
    hotspots = rank_location_hotspots(signals, hotspot_limit)

    key_metrics = KeyMetrics(
        total_signals=sum(b.total for b in trends),
        high_severity=next(c.count for c in severity if c.severity == Severity.HIGH),
        hotspot_count=len(hotspots),
        active_events=sum(1 for e in events if e.status == EventStatus.ACTIVE),
    )

    return AnalyticsSnapshot(
        window=window,
        generated_at=now,
        trends=trends,
        severity_distribution=severity,
        hotspots=hotspots,
        type_breakdown=build_type_breakdown(signals),
        time_patterns=build_time_patterns(signals),
        risk_assessment=estimate_risk_factors(signals, events, metrics, now),
        key_metrics=key_metrics,
        rejected_records=rejected_records,
    )
