# services/surveillance_service/notifications.py

from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from loguru import logger

from .schemas import (
    Alert,
    DashboardHealth,
    Event,
    EventStatus,
    Notification,
    NotificationFeed,
    NotificationFilter,
    Severity,
    SourceKind,
    SystemHealth,
    SystemNotice,
    SystemStatus,
)


# ---------- Системные сообщения ----------


def build_system_notices(now: datetime, status: Optional[SystemStatus] = None) -> list[SystemNotice]:
    """
    Сообщения, которые формирует сам сервис (не из хранилища).
    Если live-монитор нездоров, добавляется сообщение о его состоянии.
    """
    notices = [
        SystemNotice(
            id="1",
            title="AI Model Updated",
            message="Detection algorithms have been improved for better accuracy",
            severity=Severity.LOW,
            timestamp=now - timedelta(hours=2),
        )
    ]
    if status is not None and status.system_health != SystemHealth.HEALTHY:
        critical = status.system_health == SystemHealth.CRITICAL
        notices.append(
            SystemNotice(
                id="health",
                title=f"System {status.system_health.value}",
                message=(
                    "Live monitor lost connection to the record store"
                    if not status.is_connected
                    else f"Live monitor reports {status.signals_per_minute} signals/min"
                ),
                severity=Severity.HIGH if critical else Severity.MEDIUM,
                timestamp=status.last_update,
            )
        )
    return notices


# ---------- Преобразование записей ----------


def alert_to_notification(alert: Alert) -> Notification:
    return Notification(
        id=f"{SourceKind.ALERT.value}-{alert.id}",
        source_kind=SourceKind.ALERT,
        title=alert.title,
        message=f"Health alert issued for {alert.location}",
        severity=alert.severity,
        timestamp=alert.issued_at,
        action_ref="/alerts",
    )


def event_to_notification(event: Event) -> Notification:
    return Notification(
        id=f"{SourceKind.EVENT.value}-{event.id}",
        source_kind=SourceKind.EVENT,
        title=event.title,
        message=f"{event.signal_count} signals detected in {event.location}",
        severity=event.severity,
        timestamp=event.created_at,
        action_ref=f"/event/{event.id}",
    )


def notice_to_notification(notice: SystemNotice) -> Notification:
    return Notification(
        id=f"{SourceKind.SYSTEM.value}-{notice.id}",
        source_kind=SourceKind.SYSTEM,
        title=notice.title,
        message=notice.message,
        severity=notice.severity,
        timestamp=notice.timestamp,
    )


def merge_notifications(
    alerts: Iterable[Alert],
    events: Iterable[Event],
    notices: Iterable[SystemNotice],
) -> list[Notification]:
    """
    Объединяет алерты, активные события и системные сообщения,
    убирает дубликаты по id (побеждает первое вхождение) и сортирует
    по времени от нового к старому (при равенстве: стабильно).
    """
    candidates = [
        *(alert_to_notification(a) for a in alerts),
        *(event_to_notification(e) for e in events if e.status == EventStatus.ACTIVE),
        *(notice_to_notification(n) for n in notices),
    ]

    seen: set[str] = set()
    unique: list[Notification] = []
    for item in candidates:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)

    return sorted(unique, key=lambda n: n.timestamp, reverse=True)


# ---------- Центр уведомлений ----------


class NotificationCenter:
    """
    Хранит последний объединённый набор уведомлений и карту прочтения.

    Карта прочтения ключуется стабильным id (<source_kind>-<source_id>),
    поэтому отметка переживает повторные merge. Сами Notification не
    меняются, набор пересобирается с новым значением read.
    """

    def __init__(self, limit: int = 20):
        self.limit = limit
        self._all: tuple[Notification, ...] = ()
        self._read: dict[str, bool] = {}
        self._health = DashboardHealth(is_connected=True, system_health=SystemHealth.HEALTHY)
        self._rejected = 0

    @property
    def health(self) -> DashboardHealth:
        return self._health

    def mark_failed(self, reason: str) -> None:
        """Хранилище недоступно: прежний набор остаётся, здоровье critical."""
        self._health = self._health.model_copy(update={
            "is_connected": False,
            "system_health": SystemHealth.CRITICAL,
            "last_error": reason,
        })
        logger.error(f"❌ Notification merge aborted, keeping previous feed: {reason}")

    def merge(
        self,
        alerts: Sequence[Alert],
        events: Sequence[Event],
        notices: Sequence[SystemNotice],
        rejected: int = 0,
        now: Optional[datetime] = None,
    ) -> list[Notification]:
        merged = merge_notifications(alerts, events, notices)
        self._rejected = rejected
        self._health = DashboardHealth(
            is_connected=True,
            system_health=SystemHealth.WARNING if rejected else SystemHealth.HEALTHY,
            last_refresh_at=now,
            last_error=f"{rejected} malformed records skipped" if rejected else None,
        )
        current_ids = {n.id for n in merged}
        # забываем прочтение уведомлений, которых больше нет в источниках
        self._read = {k: v for k, v in self._read.items() if k in current_ids}
        self._all = tuple(self._with_read_state(merged))

        logger.info(
            f"🔔 Notifications merged | total={len(self._all)}, "
            f"feed={len(self.feed)}, unread={self.unread_count}, rejected={rejected}"
        )
        return self.feed

    def _with_read_state(self, items: Iterable[Notification]) -> list[Notification]:
        return [
            n if n.read == self._read.get(n.id, False)
            else n.model_copy(update={"read": self._read.get(n.id, False)})
            for n in items
        ]

    @property
    def all(self) -> list[Notification]:
        return list(self._all)

    @property
    def feed(self) -> list[Notification]:
        """Самые свежие `limit` уведомлений."""
        return list(self._all[: self.limit])

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._all if not n.read)

    def mark_read(self, notification_id: str) -> bool:
        """
        Помечает одно уведомление прочитанным.
        Неизвестный id и повторная отметка: no-op (возвращает False).
        """
        known = any(n.id == notification_id for n in self._all)
        if not known or self._read.get(notification_id):
            return False
        self._read[notification_id] = True
        self._all = tuple(self._with_read_state(self._all))
        logger.debug(f"✅ Notification {notification_id} marked as read")
        return True

    def mark_all_read(self) -> int:
        """Помечает всё прочитанным; возвращает число реально изменённых."""
        changed = [n.id for n in self._all if not n.read]
        if not changed:
            return 0
        for notification_id in changed:
            self._read[notification_id] = True
        self._all = tuple(self._with_read_state(self._all))
        logger.info(f"✅ {len(changed)} notifications marked as read")
        return len(changed)

    def filtered(self, notification_filter: NotificationFilter | str = NotificationFilter.ALL) -> list[Notification]:
        notification_filter = NotificationFilter(notification_filter)
        if notification_filter == NotificationFilter.UNREAD:
            return [n for n in self.feed if not n.read]
        if notification_filter == NotificationFilter.HIGH:
            return [n for n in self.feed if n.severity == Severity.HIGH]
        return self.feed

    def view(self, notification_filter: NotificationFilter | str = NotificationFilter.ALL) -> NotificationFeed:
        notification_filter = NotificationFilter(notification_filter)
        return NotificationFeed(
            items=self.filtered(notification_filter),
            unread_count=self.unread_count,
            total=len(self._all),
            filter=notification_filter,
            is_connected=self._health.is_connected,
            system_health=self._health.system_health,
            rejected_records=self._rejected,
            last_error=self._health.last_error,
        )
