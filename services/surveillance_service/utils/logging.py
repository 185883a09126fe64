# services/surveillance_service/utils/logging.py

import sys
from loguru import logger

from ..config import settings

SERVICE_KEY = "surveillance_service"

_configured = False


def setup_logging():
    """
    Настраивает loguru один раз на процесс и возвращает logger.

    main.py и каждый роутер вызывают setup_logging() при импорте;
    повторные вызовы не пересоздают хендлеры. Каждая запись несёт
    extra["service"], чтобы логи сервиса отделялись в общем потоке.

    LOG_JSON=true переключает stdout на serialize=True (JSON-строка на
    запись) для Loki/ELK, иначе цветной читаемый формат.
    """
    global _configured
    if _configured:
        return logger

    logger.remove()
    logger.configure(extra={"service": SERVICE_KEY})

    level = settings.LOG_LEVEL.upper()
    if settings.LOG_JSON:
        logger.add(sys.stdout, serialize=True, level=level, enqueue=True)
    else:
        logger.add(
            sys.stdout,
            colorize=True,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<magenta>{extra[service]}</magenta> | "
                "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
                "<level>{message}</level>"
            ),
            level=level,
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )

    _configured = True
    logger.info(f"📜 Logging initialized (level={level}, json={settings.LOG_JSON})")
    return logger
