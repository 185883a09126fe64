# services/surveillance_service/database.py

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings

# Таблицы signals / events / alerts принадлежат внешнему хранилищу (Supabase),
# сервис их только читает.
STORE_SCHEMA = "public"


class Base(DeclarativeBase):
    """Базовый класс моделей SQLAlchemy для surveillance_service."""
    pass


@lru_cache(maxsize=None)
def get_engine(url: str | None = None) -> Engine:
    """Движок создаётся лениво: в режиме RECORD_SOURCE=supabase он не нужен."""
    return create_engine(
        url or settings.DATABASE_URL,
        pool_pre_ping=True,
        future=True,
    )


def session_factory(engine: Engine) -> sessionmaker[Session]:
    """Фабрика сессий только для чтения."""
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
    )
