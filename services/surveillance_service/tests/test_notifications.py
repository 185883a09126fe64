from pathlib import Path
from datetime import datetime, timedelta, timezone
import sys

ROOT = Path(__file__).resolve().parents[3]
SERVICES_DIR = ROOT / "services"
if str(SERVICES_DIR) not in sys.path:
    sys.path.insert(0, str(SERVICES_DIR))

from surveillance_service.notifications import (
    NotificationCenter,
    build_system_notices,
    merge_notifications,
)
from surveillance_service.schemas import (
    Alert,
    Event,
    NotificationFilter,
    Severity,
    SourceKind,
    SystemHealth,
    SystemStatus,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_alert(idx: int, minutes_ago: int, severity: str = "high") -> Alert:
    return Alert(
        id=str(idx), title=f"Alert {idx}", location="Mumbai, Andheri",
        severity=severity, issued_at=NOW - timedelta(minutes=minutes_ago),
    )


def make_event(idx: int, minutes_ago: int, status: str = "active") -> Event:
    return Event(
        id=str(idx), title=f"Event {idx}", location="Delhi, Central", severity="medium",
        signal_count=7, status=status, created_at=NOW - timedelta(minutes=minutes_ago),
    )


def test_merge_maps_sources_to_notifications() -> None:
    merged = merge_notifications(
        [make_alert(1, 10)],
        [make_event(5, 5), make_event(6, 1, status="resolved")],
        build_system_notices(NOW),
    )

    by_id = {n.id: n for n in merged}
    assert set(by_id) == {"alert-1", "event-5", "system-1"}

    alert = by_id["alert-1"]
    assert alert.source_kind == SourceKind.ALERT
    assert alert.message == "Health alert issued for Mumbai, Andheri"
    assert alert.action_ref == "/alerts"
    assert alert.read is False

    event = by_id["event-5"]
    assert event.message == "7 signals detected in Delhi, Central"
    assert event.action_ref == "/event/5"

    system = by_id["system-1"]
    assert system.title == "AI Model Updated"
    assert system.action_ref is None


def test_merge_sorts_newest_first_and_dedupes() -> None:
    merged = merge_notifications(
        [make_alert(1, 30), make_alert(2, 5), make_alert(1, 1)],
        [make_event(3, 15)],
        [],
    )

    assert [n.id for n in merged] == ["alert-2", "event-3", "alert-1"]
    timestamps = [n.timestamp for n in merged]
    assert timestamps == sorted(timestamps, reverse=True)


def test_feed_is_truncated_but_unread_count_covers_full_set() -> None:
    center = NotificationCenter(limit=20)
    center.merge([make_alert(i, i) for i in range(30)], [], [])

    assert len(center.feed) == 20
    assert center.feed[0].id == "alert-0"
    assert center.unread_count == 30

    view = center.view()
    assert view.total == 30
    assert len(view.items) == 20


def test_mark_read_is_idempotent_and_ignores_unknown_ids() -> None:
    center = NotificationCenter()
    center.merge([make_alert(1, 1), make_alert(2, 2)], [], [])

    assert center.mark_read("alert-1") is True
    assert center.mark_read("alert-1") is False
    assert center.mark_read("alert-404") is False
    assert center.unread_count == 1
    assert [n.read for n in center.feed] == [True, False]


def test_mark_all_read_is_idempotent() -> None:
    center = NotificationCenter()
    center.merge([make_alert(1, 1)], [make_event(2, 2)], build_system_notices(NOW))

    assert center.mark_all_read() == 3
    before = center.all
    assert center.mark_all_read() == 0
    assert center.all == before
    assert center.unread_count == 0


def test_read_state_survives_remerge() -> None:
    center = NotificationCenter()
    center.merge([make_alert(1, 10)], [], [])
    center.mark_read("alert-1")

    center.merge([make_alert(1, 10), make_alert(2, 1)], [], [])

    states = {n.id: n.read for n in center.feed}
    assert states == {"alert-1": True, "alert-2": False}


def test_filters() -> None:
    center = NotificationCenter()
    center.merge([make_alert(1, 1, "high"), make_alert(2, 2, "low")], [make_event(3, 3)], [])
    center.mark_read("alert-1")

    assert len(center.filtered(NotificationFilter.ALL)) == 3
    assert [n.id for n in center.filtered("unread")] == ["alert-2", "event-3"]
    assert [n.id for n in center.filtered("high")] == ["alert-1"]
    assert all(n.severity == Severity.HIGH for n in center.filtered("high"))


def test_unhealthy_monitor_produces_system_notice() -> None:
    status = SystemStatus(is_connected=False, last_update=NOW, system_health=SystemHealth.CRITICAL)

    notices = build_system_notices(NOW, status)

    assert [n.id for n in notices] == ["1", "health"]
    assert notices[1].severity == Severity.HIGH
    assert build_system_notices(NOW, SystemStatus(last_update=NOW))[-1].id == "1"
