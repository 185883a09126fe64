# services/surveillance_service/ingest.py

from dataclasses import dataclass, field
from typing import Any, Generic, Iterable, Mapping, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from .errors import AggregationInputError
from .schemas import Alert, Event, Signal

RecordT = TypeVar("RecordT", bound=BaseModel)


@dataclass
class IngestResult(Generic[RecordT]):
    """Результат разбора пачки сырых строк из хранилища."""
    records: list[RecordT] = field(default_factory=list)
    rejected: list[AggregationInputError] = field(default_factory=list)


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "record"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def parse_records(
    kind: str,
    model: type[RecordT],
    rows: Iterable[Mapping[str, Any]],
) -> IngestResult[RecordT]:
    """
    Превращает сырые строки хранилища в типизированные записи.

    Некорректная строка не прерывает разбор: она превращается в
    AggregationInputError, логируется и пропускается.
    """
    result: IngestResult[RecordT] = IngestResult()
    for row in rows:
        record_id = row.get("id") if isinstance(row, Mapping) else None
        try:
            if not isinstance(row, Mapping):
                raise AggregationInputError(kind, None, f"expected mapping, got {type(row).__name__}")
            try:
                result.records.append(model.model_validate(dict(row)))
            except ValidationError as e:
                raise AggregationInputError(
                    kind, str(record_id) if record_id is not None else None, _describe(e)
                ) from e
        except AggregationInputError as e:
            logger.warning(f"⚠️ Skipping malformed {kind}: {e}")
            result.rejected.append(e)
    return result


def parse_signals(rows: Iterable[Mapping[str, Any]]) -> IngestResult[Signal]:
    return parse_records("signal", Signal, rows)


def parse_events(rows: Iterable[Mapping[str, Any]]) -> IngestResult[Event]:
    return parse_records("event", Event, rows)


def parse_alerts(rows: Iterable[Mapping[str, Any]]) -> IngestResult[Alert]:
    return parse_records("alert", Alert, rows)
