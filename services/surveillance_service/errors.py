# services/surveillance_service/errors.py


class SurveillanceError(Exception):
    """Базовая ошибка surveillance-сервиса."""


class SourceFetchError(SurveillanceError):
    """
    Источник записей (signals / events / alerts) недоступен:
    сетевая ошибка, ошибка хранилища или неожиданный ответ.
    Прерывает цикл обновления целиком.
    """

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class AggregationInputError(SurveillanceError):
    """
    Некорректная запись (нет location, битый timestamp, неизвестная severity).
    Такая запись пропускается, агрегация продолжается.
    """

    def __init__(self, kind: str, record_id: str | None, reason: str):
        self.kind = kind
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"{kind} {record_id or '<no id>'}: {reason}")
