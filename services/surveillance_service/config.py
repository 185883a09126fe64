# services/surveillance_service/config.py

import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Конфигурация surveillance_service — аналитики эпиднадзора:
    тренды сигналов, горячие точки, риск, уведомления и live-лента.
    """

    # --- Основная информация ---
    SERVICE_NAME: str = "Surveillance Analytics Service"
    VERSION: str = "1.0.0"
    ENV: str = os.getenv("ENV", "dev")

    # --- Источник записей: supabase (REST) или sql (прямое подключение) ---
    RECORD_SOURCE: str = os.getenv("RECORD_SOURCE", "supabase")

    SUPABASE_URL: str = os.getenv(
        "SUPABASE_URL",
        "http://supabase:8000"
    )
    SUPABASE_KEY: str = os.getenv("SUPABASE_KEY", "")

    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql://postgres:postgres@db:5432/postgres"
    )

    # --- Настройки запросов ---
    REQUEST_TIMEOUT: float = 5.0

    # --- Поставщик метрик: observed | demo | static ---
    METRICS_PROVIDER: str = os.getenv("METRICS_PROVIDER", "observed")
    METRICS_SEED: int | None = None

    # --- Аналитика ---
    DEFAULT_WINDOW: str = "7d"
    HOTSPOT_LIMIT: int = 10
    NOTIFICATION_LIMIT: int = 20

    # --- Live-монитор ---
    MONITOR_ENABLED: bool = True
    MONITOR_PERIOD_SECONDS: float = 3.0
    NEW_FLAG_DELAY_SECONDS: float = 2.0
    FEED_CAPACITY: int = 10
    SIGNAL_PROBABILITY: float = 0.3     # шанс нового сигнала на тик
    WARNING_PROBABILITY: float = 0.1    # шанс статуса warning (demo)
    SIGNALS_PER_MINUTE_WARNING: int = 8 # порог warning (observed)

    # --- Логирование ---
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON: bool = False   # serialize=True для Loki/ELK

    # --- Файл .env ---
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
