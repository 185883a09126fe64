"""
surveillance_service — микросервис аналитики эпиднадзора.
Тренды сигналов, горячие точки, разбивки, вектор риска, лента уведомлений
и live-монитор поверх внешнего хранилища signals / events / alerts.
"""

from .config import settings
from .errors import AggregationInputError, SourceFetchError, SurveillanceError

__all__ = [
    "settings",
    "SurveillanceError",
    "SourceFetchError",
    "AggregationInputError",
]
