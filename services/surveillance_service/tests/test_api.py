from pathlib import Path
from datetime import datetime, timedelta, timezone
import random
import sys

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[3]
SERVICES_DIR = ROOT / "services"
if str(SERVICES_DIR) not in sys.path:
    sys.path.insert(0, str(SERVICES_DIR))

from surveillance_service.dependencies import build_app_state, get_app_state
from surveillance_service.live_feed import ManualScheduler
from surveillance_service.main import app
from surveillance_service.metrics import StaticMetricsProvider
from surveillance_service.sources import InMemoryRecordSource

NOW = datetime.now(timezone.utc)


def iso(delta: timedelta) -> str:
    return (NOW - delta).isoformat()


SIGNALS = [
    {"id": "s1", "type": "Fever", "location": "Mumbai, Andheri", "severity": "high", "created_at": iso(timedelta(minutes=5))},
    {"id": "s2", "type": "Fever", "location": "Mumbai, Andheri", "severity": "high", "created_at": iso(timedelta(hours=1))},
    {"id": "s3", "type": "Cough", "location": "Delhi, Central", "severity": "low", "created_at": iso(timedelta(days=1))},
]
EVENTS = [
    {"id": "e1", "title": "Fever cluster", "location": "Mumbai, Andheri", "severity": "high",
     "signal_count": 2, "status": "active", "created_at": iso(timedelta(minutes=30))},
    {"id": "e2", "title": "Old cluster", "location": "Delhi", "severity": "low",
     "signal_count": 1, "status": "resolved", "created_at": iso(timedelta(days=3))},
]
ALERTS = [
    {"id": "a1", "title": "Fever advisory", "location": "Mumbai", "severity": "high", "issued_at": iso(timedelta(minutes=10))},
]


@pytest.fixture
def source() -> InMemoryRecordSource:
    return InMemoryRecordSource(SIGNALS, EVENTS, ALERTS)


@pytest.fixture
def client(source):
    state = build_app_state(
        source,
        StaticMetricsProvider(),
        scheduler=ManualScheduler(NOW),
        rng=random.Random(0),
    )
    app.dependency_overrides[get_app_state] = lambda: state
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok", "service": "surveillance_service"}


def test_hotspots_endpoint(client) -> None:
    resp = client.get("/api/v1/analytics/hotspots", params={"window": "7d"})

    assert resp.status_code == 200
    assert resp.json() == [
        {"location": "Mumbai", "count": 2, "risk": "low"},
        {"location": "Delhi", "count": 1, "risk": "low"},
    ]


def test_trends_and_risk_endpoints(client) -> None:
    trends = client.get("/api/v1/analytics/trends", params={"window": "30d"}).json()
    assert len(trends) == 30

    risk = client.get("/api/v1/analytics/risk").json()
    assert [f["factor"] for f in risk][:2] == ["Signal Volume", "Severity Level"]
    assert all(0 <= f["value"] <= 100 for f in risk)


def test_invalid_window_is_422(client) -> None:
    assert client.get("/api/v1/analytics/trends", params={"window": "2d"}).status_code == 422


def test_store_failure_is_503_and_snapshot_survives(client, source) -> None:
    assert client.get("/api/v1/analytics/summary").status_code == 200

    source.fail_on = "events"
    assert client.get("/api/v1/analytics/summary").status_code == 503

    health = client.get("/api/v1/analytics/health").json()
    assert health["system_health"] == "critical"
    assert client.get("/api/v1/analytics/snapshot").status_code == 200


def test_snapshot_before_any_refresh_is_404(client) -> None:
    assert client.get("/api/v1/analytics/snapshot").status_code == 404


def test_notification_flow(client) -> None:
    feed = client.get("/api/v1/notifications").json()

    ids = [n["id"] for n in feed["items"]]
    assert ids == ["alert-a1", "event-e1", "system-1"]
    assert feed["unread_count"] == 3

    feed = client.post("/api/v1/notifications/alert-a1/read").json()
    assert feed["unread_count"] == 2

    feed = client.post("/api/v1/notifications/unknown/read").json()
    assert feed["unread_count"] == 2

    high = client.get("/api/v1/notifications/feed", params={"filter": "high"}).json()
    assert [n["id"] for n in high["items"]] == ["alert-a1", "event-e1"]

    assert client.post("/api/v1/notifications/read-all").json()["unread_count"] == 0
    assert client.post("/api/v1/notifications/read-all").json()["unread_count"] == 0

    # повторный merge не сбрасывает прочтение
    assert client.get("/api/v1/notifications").json()["unread_count"] == 0


def test_monitor_reload_and_tick(client) -> None:
    state = client.post("/api/v1/monitor/reload").json()
    assert [e["id"] for e in state["entries"]] == ["s1", "s2", "s3"]
    assert state["monitoring"] is False
    assert state["stats"]["active_events"] == 1

    for _ in range(15):
        state = client.post("/api/v1/monitor/tick").json()
    assert len(state["entries"]) <= 10
    assert state["status"]["is_connected"] is True


def test_monitor_reload_failure_is_503(client, source) -> None:
    source.fail_on = "signals"

    assert client.post("/api/v1/monitor/reload").status_code == 503
    state = client.get("/api/v1/monitor/state").json()
    assert state["status"]["system_health"] == "critical"


def test_notification_store_failure_flags_health_and_keeps_feed(client, source) -> None:
    assert client.get("/api/v1/notifications").status_code == 200

    source.fail_on = "alerts"
    assert client.get("/api/v1/notifications").status_code == 503

    feed = client.get("/api/v1/notifications/feed").json()
    assert feed["is_connected"] is False
    assert feed["system_health"] == "critical"
    assert [n["id"] for n in feed["items"]] == ["alert-a1", "event-e1", "system-1"]

    status = client.get("/api/v1/monitor/state").json()["status"]
    assert status["is_connected"] is False
    assert status["system_health"] == "critical"

    source.fail_on = None
    feed = client.get("/api/v1/notifications").json()
    assert feed["is_connected"] is True
    assert "system-health" in [n["id"] for n in feed["items"]]


def test_malformed_alert_row_is_reported_in_feed(client, source) -> None:
    source.alerts.append(
        {"id": "a2", "title": "Broken", "location": "Delhi", "severity": "catastrophic",
         "issued_at": iso(timedelta(minutes=1))}
    )

    resp = client.get("/api/v1/notifications")

    assert resp.status_code == 200
    feed = resp.json()
    assert feed["rejected_records"] == 1
    assert feed["system_health"] == "warning"
    assert "alert-a2" not in [n["id"] for n in feed["items"]]


def test_unexpected_adapter_error_in_notifications_is_503() -> None:
    class BrokenAlertsSource(InMemoryRecordSource):
        async def list_alerts(self) -> list[dict]:
            raise RuntimeError("driver exploded")

    state = build_app_state(
        BrokenAlertsSource(SIGNALS, EVENTS),
        StaticMetricsProvider(),
        scheduler=ManualScheduler(NOW),
        rng=random.Random(0),
    )
    app.dependency_overrides[get_app_state] = lambda: state
    try:
        resp = TestClient(app).get("/api/v1/notifications")
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 503
    assert state.notifications.health.system_health.value == "critical"
