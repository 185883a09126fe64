# services/surveillance_service/schemas.py

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ------------------------------------------------------------
#  ЗАКРЫТЫЕ ПЕРЕЧИСЛЕНИЯ
# ------------------------------------------------------------

class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EventStatus(str, Enum):
    ACTIVE = "active"
    MONITORING = "monitoring"
    RESOLVED = "resolved"


class SourceKind(str, Enum):
    ALERT = "alert"
    EVENT = "event"
    SYSTEM = "system"


class SystemHealth(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class TimeWindow(str, Enum):
    DAY = "1d"
    WEEK = "7d"
    MONTH = "30d"

    @property
    def days(self) -> int:
        return {"1d": 1, "7d": 7, "30d": 30}[self.value]


class NotificationFilter(str, Enum):
    ALL = "all"
    UNREAD = "unread"
    HIGH = "high"


def _as_utc(value: datetime) -> datetime:
    """Наивные timestamp-ы из хранилища считаем UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utc_date(moment: datetime) -> date:
    """Календарный день момента в UTC (наивное время уже UTC)."""
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(timezone.utc).date()


# ------------------------------------------------------------
#  ЗАПИСИ ИЗ ХРАНИЛИЩА (только чтение)
# ------------------------------------------------------------

class _Record(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    location: str = Field(min_length=1, description="Путь региона через запятую: 'Mumbai, Andheri'")
    severity: Severity

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # uuid в Supabase, integer в SQL-копиях
        if value is not None and not isinstance(value, str):
            return str(value)
        return value

    @field_validator("location", mode="before")
    @classmethod
    def _strip_location(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("location")
    @classmethod
    def _require_region(cls, value: str) -> str:
        # первый сегмент пути идёт в горячие точки и географический охват
        if not value.split(",")[0].strip():
            raise ValueError("location has no primary region")
        return value

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class Signal(_Record):
    """Отдельное сообщение о симптоме / наблюдении."""
    type: str = Field(min_length=1, description="Свободная категория: Cough, Fever, ...")
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _tz(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Event(_Record):
    """Кластер сигналов, кандидат во вспышку."""
    title: str
    signal_count: int = Field(default=0, ge=0)
    status: EventStatus
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("created_at")
    @classmethod
    def _tz(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Alert(_Record):
    """Выпущенное предупреждение по локации."""
    title: str
    issued_at: datetime

    @field_validator("issued_at")
    @classmethod
    def _tz(cls, value: datetime) -> datetime:
        return _as_utc(value)


# ------------------------------------------------------------
#  ПРОИЗВОДНЫЕ ПРЕДСТАВЛЕНИЯ (пересчитываются целиком)
# ------------------------------------------------------------

class _View(BaseModel):
    model_config = ConfigDict(frozen=True)


class TrendBucket(_View):
    date: date
    label: str = Field(description="Подпись оси: 'Oct 19'")
    total: int = Field(ge=0)
    high: int = Field(ge=0)
    medium: int = Field(ge=0)
    low: int = Field(ge=0)
    anomaly: float = Field(ge=0, le=1, description="Индикатор аномальности объёма за день")


class SeverityCount(_View):
    severity: Severity
    label: str
    count: int = Field(ge=0)


class Hotspot(_View):
    location: str = Field(description="Первичный регион (первый сегмент location)")
    count: int = Field(ge=0)
    risk: Severity


class TypeShare(_View):
    type: str
    count: int = Field(ge=0)
    percentage: int = Field(ge=0, le=100)


class TimeBucket(_View):
    hour: int = Field(ge=0, le=23)
    label: str
    signals: int = Field(ge=0)
    normalized: float = Field(ge=0, le=100)


class RiskFactor(_View):
    factor: str
    value: float = Field(ge=0, le=100)


class KeyMetrics(_View):
    total_signals: int = Field(description="Сигналы внутри окна")
    high_severity: int
    hotspot_count: int
    active_events: int


class AnalyticsSnapshot(_View):
    """
    Полный срез аналитики за одно обновление.
    Никогда не меняется на месте, только заменяется новым.
    """
    window: TimeWindow
    generated_at: datetime

    trends: List[TrendBucket]
    severity_distribution: List[SeverityCount]
    hotspots: List[Hotspot]
    type_breakdown: List[TypeShare]
    time_patterns: List[TimeBucket]
    risk_assessment: List[RiskFactor]
    key_metrics: KeyMetrics

    rejected_records: int = Field(default=0, description="Пропущенные некорректные записи")


class DashboardHealth(_View):
    is_connected: bool
    system_health: SystemHealth
    last_refresh_at: Optional[datetime] = None
    last_error: Optional[str] = None


# ------------------------------------------------------------
#  УВЕДОМЛЕНИЯ
# ------------------------------------------------------------

class SystemNotice(_View):
    """Системное сообщение, формируемое самим сервисом."""
    id: str
    title: str
    message: str
    severity: Severity = Severity.LOW
    timestamp: datetime


class Notification(_View):
    id: str = Field(description="<source_kind>-<source_id>")
    source_kind: SourceKind
    title: str
    message: str
    severity: Severity
    timestamp: datetime
    read: bool = False
    action_ref: Optional[str] = None


class NotificationFeed(_View):
    items: List[Notification]
    unread_count: int
    total: int = Field(description="Размер полного объединённого набора")
    filter: NotificationFilter = NotificationFilter.ALL
    is_connected: bool = True
    system_health: SystemHealth = SystemHealth.HEALTHY
    rejected_records: int = Field(default=0, description="Пропущенные некорректные alerts / events")
    last_error: Optional[str] = None


# ------------------------------------------------------------
#  LIVE-МОНИТОР
# ------------------------------------------------------------

class FeedEntry(_View):
    id: str
    type: str
    location: str
    severity: Severity
    timestamp: datetime
    is_new: bool = False


class SystemStatus(_View):
    is_connected: bool = True
    last_update: datetime
    signals_per_minute: int = Field(default=0, ge=0)
    system_health: SystemHealth = SystemHealth.HEALTHY


class LiveStats(_View):
    total_today: int = 0
    high_severity: int = 0
    active_events: int = 0
    avg_response_time: Optional[float] = Field(default=None, description="Секунды")


class MonitorState(_View):
    monitoring: bool
    entries: List[FeedEntry]
    status: SystemStatus
    stats: LiveStats
