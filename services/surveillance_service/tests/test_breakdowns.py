from pathlib import Path
from datetime import datetime, timedelta, timezone
import sys

ROOT = Path(__file__).resolve().parents[3]
SERVICES_DIR = ROOT / "services"
if str(SERVICES_DIR) not in sys.path:
    sys.path.insert(0, str(SERVICES_DIR))

from surveillance_service.analytics import (
    build_severity_distribution,
    build_time_patterns,
    build_type_breakdown,
    estimate_risk_factors,
    hotspot_risk,
    rank_location_hotspots,
)
from surveillance_service.metrics import StaticMetricsProvider
from surveillance_service.schemas import Event, Severity, Signal

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_signal(idx: int, location: str = "Mumbai, Andheri", severity: str = "low",
                signal_type: str = "Fever", hour: int = 10) -> Signal:
    return Signal(
        id=f"s{idx}",
        type=signal_type,
        location=location,
        severity=severity,
        created_at=NOW.replace(hour=hour),
    )


def make_event(idx: int, status: str = "active") -> Event:
    return Event(
        id=f"e{idx}", title="Cluster", location="Mumbai, Andheri", severity="high",
        signal_count=3, status=status, created_at=NOW,
    )


# ---------- Горячие точки ----------


def test_hotspots_group_by_primary_region() -> None:
    signals = [
        make_signal(1, "Mumbai,Andheri", "high"),
        make_signal(2, "Mumbai,Andheri", "high"),
        make_signal(3, "Delhi,Central", "low", hour=11),
    ]

    hotspots = rank_location_hotspots(signals)

    assert [(h.location, h.count, h.risk) for h in hotspots] == [
        ("Mumbai", 2, Severity.LOW),
        ("Delhi", 1, Severity.LOW),
    ]


def test_hotspot_risk_tier_boundaries() -> None:
    assert hotspot_risk(5) == Severity.LOW
    assert hotspot_risk(6) == Severity.MEDIUM
    assert hotspot_risk(10) == Severity.MEDIUM
    assert hotspot_risk(11) == Severity.HIGH


def test_hotspots_are_top_ten_descending_with_stable_ties() -> None:
    signals = []
    idx = 0
    for region_no in range(14):
        # регионы 0..13, у чётных по 2 сигнала, у нечётных по 1
        for _ in range(2 if region_no % 2 == 0 else 1):
            idx += 1
            signals.append(make_signal(idx, f"Region{region_no}, Ward"))

    hotspots = rank_location_hotspots(signals)
    counts = [h.count for h in hotspots]

    assert len(hotspots) == 10
    assert counts == sorted(counts, reverse=True)
    assert [h.location for h in hotspots[:7]] == [f"Region{n}" for n in range(0, 14, 2)]
    assert [h.location for h in hotspots[7:]] == ["Region1", "Region3", "Region5"]


def test_hotspots_return_all_groups_when_fewer_than_limit() -> None:
    assert rank_location_hotspots([]) == []
    assert len(rank_location_hotspots([make_signal(1)])) == 1


# ---------- Типы и severity ----------


def test_type_breakdown_percentages_sum_to_about_hundred() -> None:
    signals = (
        [make_signal(i, signal_type="Fever") for i in range(3)]
        + [make_signal(10 + i, signal_type="Cough") for i in range(3)]
        + [make_signal(20 + i, signal_type="Respiratory") for i in range(1)]
    )

    breakdown = build_type_breakdown(signals)

    assert [t.type for t in breakdown] == ["Fever", "Cough", "Respiratory"]
    assert [t.percentage for t in breakdown] == [43, 43, 14]
    assert abs(sum(t.percentage for t in breakdown) - 100) <= len(breakdown)


def test_type_breakdown_rounds_half_up() -> None:
    signals = [make_signal(1, signal_type="Fever"), make_signal(2, signal_type="Cough")]
    signals += [make_signal(10 + i, signal_type="Other") for i in range(6)]

    percentages = {t.type: t.percentage for t in build_type_breakdown(signals)}

    # 1/8 = 12.5 % → 13, а не банковское 12
    assert percentages["Fever"] == 13
    assert percentages["Other"] == 75


def test_type_breakdown_empty_input() -> None:
    assert build_type_breakdown([]) == []


def test_severity_distribution_counts_each_tier() -> None:
    signals = [make_signal(1, severity="high"), make_signal(2, severity="low"), make_signal(3, severity="low")]

    distribution = build_severity_distribution(signals)

    assert [(d.label, d.count) for d in distribution] == [("High", 1), ("Medium", 0), ("Low", 2)]


# ---------- Часы ----------


def test_time_patterns_have_24_slots_normalized_to_peak() -> None:
    signals = [make_signal(i, hour=14) for i in range(4)] + [make_signal(9, hour=3)]

    buckets = build_time_patterns(signals)

    assert len(buckets) == 24
    assert buckets[14].signals == 4
    assert buckets[14].normalized == 100
    assert buckets[3].normalized == 25
    assert buckets[0].label == "00:00"
    assert buckets[23].label == "23:00"


def test_time_patterns_empty_input_are_all_zero() -> None:
    buckets = build_time_patterns([])
    assert len(buckets) == 24
    assert all(b.signals == 0 and b.normalized == 0 for b in buckets)


def test_time_patterns_use_record_local_hour() -> None:
    ist = timezone(timedelta(hours=5, minutes=30))
    signal = Signal(
        id="s1", type="Cough", location="Delhi", severity="low",
        created_at=datetime(2026, 10, 19, 20, 15, tzinfo=ist),
    )
    assert build_time_patterns([signal])[20].signals == 1


# ---------- Риск ----------


def test_risk_factors_for_empty_input() -> None:
    factors = estimate_risk_factors([], [], StaticMetricsProvider(), NOW)

    assert [f.value for f in factors] == [0, 0, 0, 0, 85, 70]
    assert factors[0].factor == "Signal Volume"
    assert factors[-1].factor == "Community Engagement"


def test_risk_factors_are_clamped_to_hundred() -> None:
    signals = [make_signal(i, f"Region{i % 15}, Ward", "high") for i in range(250)]
    events = [make_event(i) for i in range(30)]

    factors = estimate_risk_factors(signals, events, StaticMetricsProvider(response_time=140, engagement=-5), NOW)

    assert [f.value for f in factors] == [100, 100, 100, 100, 100, 0]


def test_risk_factors_partial_values() -> None:
    signals = [make_signal(1, "Mumbai, A", "high"), make_signal(2, "Delhi, B", "low"),
               make_signal(3, "Delhi, C", "low"), make_signal(4, "Pune", "medium")]

    factors = {f.factor: f.value for f in estimate_risk_factors(signals, [make_event(1)], StaticMetricsProvider(), NOW)}

    assert factors["Signal Volume"] == 4
    assert factors["Severity Level"] == 25
    assert factors["Geographic Spread"] == 30
    assert factors["Event Frequency"] == 5
