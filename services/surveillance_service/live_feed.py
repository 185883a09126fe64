# services/surveillance_service/live_feed.py

import asyncio
import heapq
import itertools
import random
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Callable, Optional, Protocol, Sequence

from loguru import logger

from .errors import SourceFetchError
from .metrics import MetricsProvider
from .schemas import (
    Event,
    EventStatus,
    FeedEntry,
    LiveStats,
    MonitorState,
    Severity,
    Signal,
    SystemHealth,
    SystemStatus,
    utc_date,
)
from .sources import RecordSource, fetch_records

# Пул, из которого собираются синтетические сигналы
CANDIDATE_TYPES = ("Cough", "Fever", "Respiratory", "Environmental")
CANDIDATE_LOCATIONS = ("Mumbai, Andheri", "Delhi, Central", "Bangalore, Tech Park", "Chennai, T Nagar")
CANDIDATE_SEVERITIES = (Severity.LOW, Severity.MEDIUM, Severity.HIGH)


# ---------- Планировщики ----------


class Scheduler(Protocol):
    """Источник времени и отложенных вызовов для симулятора."""

    def now(self) -> datetime: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> None: ...


class AsyncioScheduler:
    """Продакшн-планировщик: часы UTC и loop.call_later."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        asyncio.get_running_loop().call_later(delay, callback)


class ManualScheduler:
    """
    Планировщик с ручным временем: тики и отложенные вызовы срабатывают
    только при advance(). Позволяет гонять симулятор без wall-clock.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime.now(timezone.utc)
        self._pending: list[tuple[datetime, int, Callable[[], None]]] = []
        self._counter = itertools.count()

    def now(self) -> datetime:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        due = self._now + timedelta(seconds=delay)
        heapq.heappush(self._pending, (due, next(self._counter), callback))

    @property
    def pending(self) -> int:
        return len(self._pending)

    def advance(self, seconds: float) -> None:
        target = self._now + timedelta(seconds=seconds)
        while self._pending and self._pending[0][0] <= target:
            due, _, callback = heapq.heappop(self._pending)
            self._now = due
            callback()
        self._now = target


# ---------- Симулятор ----------


class LiveFeedSimulator:
    """
    Состояние live-ленты: ограниченный буфер свежих сигналов (новые в
    начале), снимок SystemStatus и LiveStats.

    Все поля хранят неизменяемые снимки; каждая мутация заменяет их целиком.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        metrics: MetricsProvider,
        rng: random.Random | None = None,
        capacity: int = 10,
        new_flag_delay: float = 2.0,
        signal_probability: float = 0.3,
    ):
        self.scheduler = scheduler
        self.metrics = metrics
        self.rng = rng or random.Random()
        self.capacity = capacity
        self.new_flag_delay = new_flag_delay
        self.signal_probability = signal_probability

        self._entries: tuple[FeedEntry, ...] = ()
        self._status = SystemStatus(last_update=scheduler.now())
        self._stats = LiveStats()
        self._sequence = itertools.count(1)

    @property
    def entries(self) -> list[FeedEntry]:
        return list(self._entries)

    @property
    def status(self) -> SystemStatus:
        return self._status

    @property
    def stats(self) -> LiveStats:
        return self._stats

    def state(self, monitoring: bool) -> MonitorState:
        return MonitorState(
            monitoring=monitoring,
            entries=self.entries,
            status=self._status,
            stats=self._stats,
        )

    # --- первичная загрузка ---

    def load_initial(self, signals: Sequence[Signal], events: Sequence[Event],
                     now: datetime | None = None) -> None:
        """Заполняет буфер последними сигналами хранилища и считает статистику."""
        now = now or self.scheduler.now()
        recent = sorted(signals, key=lambda s: s.created_at, reverse=True)[: self.capacity]
        self._entries = tuple(
            FeedEntry(
                id=s.id,
                type=s.type,
                location=s.location,
                severity=s.severity,
                timestamp=s.created_at,
            )
            for s in recent
        )

        today = utc_date(now)
        self._stats = LiveStats(
            total_today=sum(1 for s in signals if utc_date(s.created_at) == today),
            high_severity=sum(1 for s in signals if s.severity == Severity.HIGH),
            active_events=sum(1 for e in events if e.status == EventStatus.ACTIVE),
            avg_response_time=self.metrics.average_response_time(),
        )

        per_minute = self.metrics.signals_per_minute(self._entries, now)
        self._status = SystemStatus(
            is_connected=True,
            last_update=now,
            signals_per_minute=per_minute,
            system_health=self.metrics.system_health(per_minute),
        )
        logger.info(
            f"📡 Live feed loaded | recent={len(self._entries)}, "
            f"today={self._stats.total_today}, high={self._stats.high_severity}"
        )

    def mark_disconnected(self, reason: str, now: datetime | None = None) -> None:
        self._status = self._status.model_copy(update={
            "is_connected": False,
            "system_health": SystemHealth.CRITICAL,
            "last_update": now or self.scheduler.now(),
        })
        logger.error(f"❌ Live feed disconnected: {reason}")

    # --- тик ---

    def _synthesize(self, now: datetime) -> FeedEntry:
        return FeedEntry(
            id=f"signal-{int(now.timestamp() * 1000)}-{next(self._sequence)}",
            type=self.rng.choice(CANDIDATE_TYPES),
            location=self.rng.choice(CANDIDATE_LOCATIONS),
            severity=self.rng.choice(CANDIDATE_SEVERITIES),
            timestamp=now,
            is_new=True,
        )

    def tick(self, now: datetime | None = None) -> Optional[FeedEntry]:
        """
        Один шаг монитора. С вероятностью signal_probability добавляет
        синтетический сигнал; статус обновляется всегда.
        Возвращает добавленную запись или None.
        """
        now = now or self.scheduler.now()
        entry: Optional[FeedEntry] = None

        if self.rng.random() < self.signal_probability:
            entry = self._synthesize(now)
            self._entries = (entry, *self._entries)[: self.capacity]
            self._stats = self._stats.model_copy(update={
                "total_today": self._stats.total_today + 1,
                "high_severity": self._stats.high_severity + (1 if entry.severity == Severity.HIGH else 0),
            })
            self.scheduler.call_later(self.new_flag_delay, partial(self.clear_new_flag, entry.id))
            logger.debug(f"🛰️ New signal {entry.id}: {entry.type} @ {entry.location} ({entry.severity.value})")

        per_minute = self.metrics.signals_per_minute(self._entries, now)
        if self._status.is_connected:
            health = self.metrics.system_health(per_minute)
        else:
            health = SystemHealth.CRITICAL
        self._status = self._status.model_copy(update={
            "last_update": now,
            "signals_per_minute": per_minute,
            "system_health": health,
        })
        return entry

    def clear_new_flag(self, entry_id: str) -> bool:
        """
        Снимает флаг is_new. Если запись уже вытеснена из буфера или флаг
        снят раньше, ничего не делает.
        """
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                if not entry.is_new:
                    return False
                updated = entry.model_copy(update={"is_new": False})
                self._entries = self._entries[:index] + (updated,) + self._entries[index + 1:]
                return True
        return False


async def load_live_feed(source: RecordSource, simulator: LiveFeedSimulator) -> None:
    """
    Разовая загрузка ленты из настоящего хранилища.
    При ошибке источник помечается отключённым, ошибка пробрасывается.
    """
    try:
        batch = await fetch_records(source, alerts=False)
    except SourceFetchError as e:
        simulator.mark_disconnected(str(e))
        raise
    simulator.metrics.record_fetch_latency(batch.elapsed)
    simulator.load_initial(batch.signals, batch.events)


# ---------- Периодический цикл ----------


class MonitorLoop:
    """
    Гоняет тики симулятора с фиксированным периодом.

    Тикер кладёт сообщения в asyncio.Queue, потребитель обрабатывает их
    строго по одному, поэтому два тика никогда не перемешиваются.
    stop() отменяет только будущие тики; уже запланированные снятия
    флага is_new доживают сами.
    """

    def __init__(self, simulator: LiveFeedSimulator, period: float = 3.0):
        self.simulator = simulator
        self.period = period
        self._queue: Optional[asyncio.Queue] = None
        self._ticker: Optional[asyncio.Task] = None
        self._consumer: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def start(self) -> bool:
        if self.running:
            return False
        # новая очередь: пропущенные тики не воспроизводятся
        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume(self._queue))
        self._ticker = asyncio.create_task(self._tick_every(self._queue))
        logger.info(f"▶️ Monitoring started (period={self.period}s)")
        return True

    async def stop(self) -> bool:
        if not self.running:
            return False
        tasks = [t for t in (self._ticker, self._consumer) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._ticker = self._consumer = self._queue = None
        logger.info("⏸️ Monitoring stopped")
        return True

    async def _tick_every(self, queue: asyncio.Queue) -> None:
        while True:
            await asyncio.sleep(self.period)
            queue.put_nowait(self.simulator.scheduler.now())

    async def _consume(self, queue: asyncio.Queue) -> None:
        while True:
            now = await queue.get()
            try:
                self.simulator.tick(now)
            except Exception as e:
                logger.error(f"❌ Monitor tick failed: {e}")
            finally:
                queue.task_done()
