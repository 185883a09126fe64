# services/surveillance_service/models.py

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base, STORE_SCHEMA


# -------------------------------------------------------------------
# 1. Сигналы: отдельные сообщения о симптомах
# -------------------------------------------------------------------

class SignalRow(Base):
    """
    Строка таблицы signals. Вставляется клиентами (в том числе анонимными),
    после вставки триггеры хранилища могут породить строку events.
    """
    __tablename__ = "signals"
    __table_args__ = {"schema": STORE_SCHEMA}

    id: Mapped[str] = mapped_column(String, primary_key=True)
    type: Mapped[str] = mapped_column(String, nullable=False)
    location: Mapped[str] = mapped_column(String, nullable=False)
    severity: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


# -------------------------------------------------------------------
# 2. События: кластеры сигналов
# -------------------------------------------------------------------

class EventRow(Base):
    __tablename__ = "events"
    __table_args__ = {"schema": STORE_SCHEMA}

    id: Mapped[str] = mapped_column(String, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    location: Mapped[str] = mapped_column(String, nullable=False)
    severity: Mapped[str] = mapped_column(String, nullable=False)
    signal_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


# -------------------------------------------------------------------
# 3. Алерты: выпущенные предупреждения
# -------------------------------------------------------------------

class AlertRow(Base):
    __tablename__ = "alerts"
    __table_args__ = {"schema": STORE_SCHEMA}

    id: Mapped[str] = mapped_column(String, primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    location: Mapped[str] = mapped_column(String, nullable=False)
    severity: Mapped[str] = mapped_column(String, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


def row_to_dict(row: Base) -> dict[str, Any]:
    """ORM-строка → сырой dict, одинаковый с ответом REST-источника."""
    return {col.key: getattr(row, col.key) for col in row.__table__.columns}
