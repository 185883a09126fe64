# services/surveillance_service/sources.py

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

import httpx
from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import get_engine, session_factory
from .errors import AggregationInputError, SourceFetchError
from .ingest import parse_alerts, parse_events, parse_signals
from .models import AlertRow, EventRow, SignalRow, row_to_dict
from .schemas import Alert, Event, Signal

RawRow = dict[str, Any]


class RecordSource(Protocol):
    """
    Внешнее хранилище записей. Каждый метод возвращает все записи таблицы
    (пустой список, не ошибка) или бросает SourceFetchError.
    """

    async def list_signals(self) -> list[RawRow]: ...

    async def list_events(self) -> list[RawRow]: ...

    async def list_alerts(self) -> list[RawRow]: ...


# ---------- Supabase (PostgREST) ----------


class SupabaseRestSource:
    """Читает таблицы Supabase через REST API (/rest/v1/<table>)."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 5.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    async def _fetch_table(self, table: str, order_by: str) -> list[RawRow]:
        url = f"{self.base_url}/rest/v1/{table}"
        params = {"select": "*", "order": f"{order_by}.desc"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, params=params, headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"⚠️ Store returned HTTP {e.response.status_code} for {table}")
            raise SourceFetchError(table, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ HTTP error while fetching {table}: {e}")
            raise SourceFetchError(table, str(e) or type(e).__name__) from e
        except ValueError as e:
            logger.error(f"❌ Invalid JSON from store for {table}: {e}")
            raise SourceFetchError(table, "invalid JSON") from e

        if data is None:
            return []
        if not isinstance(data, list):
            raise SourceFetchError(table, f"expected list, got {type(data).__name__}")
        return data

    async def list_signals(self) -> list[RawRow]:
        return await self._fetch_table("signals", "created_at")

    async def list_events(self) -> list[RawRow]:
        return await self._fetch_table("events", "created_at")

    async def list_alerts(self) -> list[RawRow]:
        return await self._fetch_table("alerts", "issued_at")


# ---------- Прямое SQL-подключение ----------


class SqlRecordSource:
    """
    Читает те же таблицы напрямую через SQLAlchemy.
    Блокирующие запросы уходят в поток, чтобы не держать event loop.
    """

    def __init__(self, database_url: str | None = None):
        self._session_factory = session_factory(get_engine(database_url))

    def _query(self, model, order_col) -> list[RawRow]:
        try:
            with self._session_factory() as db:
                rows = db.execute(select(model).order_by(order_col.desc())).scalars().all()
                return [row_to_dict(r) for r in rows]
        except SQLAlchemyError as e:
            logger.error(f"❌ Database error while reading {model.__tablename__}: {e}")
            raise SourceFetchError(model.__tablename__, type(e).__name__) from e

    async def list_signals(self) -> list[RawRow]:
        return await asyncio.to_thread(self._query, SignalRow, SignalRow.created_at)

    async def list_events(self) -> list[RawRow]:
        return await asyncio.to_thread(self._query, EventRow, EventRow.created_at)

    async def list_alerts(self) -> list[RawRow]:
        return await asyncio.to_thread(self._query, AlertRow, AlertRow.issued_at)


# ---------- In-memory ----------


class InMemoryRecordSource:
    """Фиксированный набор сырых строк, для тестов и локального запуска."""

    def __init__(self, signals: Sequence[RawRow] = (), events: Sequence[RawRow] = (),
                 alerts: Sequence[RawRow] = (), fail_on: str | None = None):
        self.signals = list(signals)
        self.events = list(events)
        self.alerts = list(alerts)
        self.fail_on = fail_on  # имя таблицы, чтение которой "падает"

    def _read(self, table: str, rows: list[RawRow]) -> list[RawRow]:
        if self.fail_on == table:
            raise SourceFetchError(table, "store unavailable")
        return list(rows)

    async def list_signals(self) -> list[RawRow]:
        return self._read("signals", self.signals)

    async def list_events(self) -> list[RawRow]:
        return self._read("events", self.events)

    async def list_alerts(self) -> list[RawRow]:
        return self._read("alerts", self.alerts)


def build_record_source() -> RecordSource:
    """Создаёт источник по settings.RECORD_SOURCE."""
    kind = settings.RECORD_SOURCE.lower()
    if kind == "supabase":
        return SupabaseRestSource(settings.SUPABASE_URL, settings.SUPABASE_KEY, settings.REQUEST_TIMEOUT)
    if kind == "sql":
        return SqlRecordSource(settings.DATABASE_URL)
    raise ValueError(f"Unknown RECORD_SOURCE: {settings.RECORD_SOURCE!r}")


# ---------- Параллельная выборка ----------


@dataclass
class RecordBatch:
    """Согласованный снимок трёх таблиц за один цикл обновления."""
    signals: list[Signal] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    alerts: list[Alert] = field(default_factory=list)
    rejected: list[AggregationInputError] = field(default_factory=list)
    elapsed: float = 0.0


async def fetch_records(source: RecordSource, *, signals: bool = True, alerts: bool = True) -> RecordBatch:
    """
    Параллельно опрашивает signals / events / alerts.
    Если хотя бы один запрос упал, падает весь цикл (SourceFetchError),
    частичных результатов нет: остальные запросы отменяются.
    """
    started = time.perf_counter()
    tables = {"events": source.list_events}
    if signals:
        tables["signals"] = source.list_signals
    if alerts:
        tables["alerts"] = source.list_alerts
    tasks = {name: asyncio.ensure_future(read()) for name, read in tables.items()}

    try:
        await asyncio.gather(*tasks.values())
    except Exception as e:
        pending = [t for t in tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if isinstance(e, SourceFetchError):
            raise
        # адаптер нарушил контракт и бросил что-то своё
        raise SourceFetchError("record_source", f"{type(e).__name__}: {e}") from e

    raw_signals = tasks["signals"].result() if signals else []
    raw_events = tasks["events"].result()
    raw_alerts = tasks["alerts"].result() if alerts else []

    parsed_signals = parse_signals(raw_signals)
    parsed_events = parse_events(raw_events)
    parsed_alerts = parse_alerts(raw_alerts)

    batch = RecordBatch(
        signals=parsed_signals.records,
        events=parsed_events.records,
        alerts=parsed_alerts.records,
        rejected=parsed_signals.rejected + parsed_events.rejected + parsed_alerts.rejected,
        elapsed=time.perf_counter() - started,
    )
    logger.debug(
        f"🔍 Fetched signals={len(batch.signals)}, events={len(batch.events)}, "
        f"alerts={len(batch.alerts)}, rejected={len(batch.rejected)} in {batch.elapsed:.3f}s"
    )
    return batch
