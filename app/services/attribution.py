# app/services/attribution.py

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Sequence

DEFAULT_MODEL = "last_click"
DEFAULT_WINDOW_DAYS = 30
# Период "полураспада" для модели time_decay
TIME_DECAY_HALF_LIFE = timedelta(days=7)

SUPPORTED_MODELS = ("last_click", "first_click", "linear", "time_decay")


@dataclass
class AttributedClick:
    """Клик, получивший долю заслуги за конверсию."""
    click: Any
    weight: float


def normalize_model(model: str | None) -> str:
    """Приводит название модели к каноническому виду; неизвестные - к last_click."""
    if not model:
        return DEFAULT_MODEL
    normalized = model.strip().lower().replace("-", "_")
    return normalized if normalized in SUPPORTED_MODELS else DEFAULT_MODEL


def clicks_in_window(
    clicks: Sequence[Any],
    conversion_at: datetime,
    window_days: int | None,
) -> List[Any]:
    """
    Возвращает клики из окна [conversion_at - window, conversion_at] в хронологическом порядке.
    Сортировка стабильная: при одинаковом времени сохраняется порядок вставки.
    """
    window_start = conversion_at - timedelta(days=window_days or DEFAULT_WINDOW_DAYS)
    in_window = [c for c in clicks if window_start <= c.clicked_at <= conversion_at]
    return sorted(in_window, key=lambda c: c.clicked_at)


def resolve_attribution(
    clicks: Sequence[Any],
    conversion_at: datetime,
    model: str | None = DEFAULT_MODEL,
    window_days: int | None = DEFAULT_WINDOW_DAYS,
) -> List[AttributedClick]:
    """
    Распределяет заслугу за конверсию между кликами по выбранной модели.

    `clicks` - история кликов по ссылке в порядке вставки; у каждого элемента нужен
    атрибут `clicked_at`. Веса в результате всегда в сумме дают 1.0.
    Пустой список означает, что в окне нет ни одного клика и конверсию засчитывать нельзя.
    Первым элементом для last_click/first_click идет единственный клик; для linear и
    time_decay - клики в хронологическом порядке.
    """
    ordered = clicks_in_window(clicks, conversion_at, window_days)
    if not ordered:
        return []

    model = normalize_model(model)

    if model == "first_click":
        return [AttributedClick(click=ordered[0], weight=1.0)]

    if model == "linear":
        weight = 1.0 / len(ordered)
        return [AttributedClick(click=c, weight=weight) for c in ordered]

    if model == "time_decay":
        half_life = TIME_DECAY_HALF_LIFE.total_seconds()
        raw = [
            math.exp(-(conversion_at - c.clicked_at).total_seconds() / half_life)
            for c in ordered
        ]
        total = sum(raw)
        return [AttributedClick(click=c, weight=w / total) for c, w in zip(ordered, raw)]

    # last_click: при равном времени побеждает клик, записанный позже
    return [AttributedClick(click=ordered[-1], weight=1.0)]


def primary_click(attributions: Sequence[AttributedClick]) -> Any:
    """
    Клик, который помечается сконвертированным: с наибольшим весом,
    а при равенстве весов - самый поздний.
    """
    best = attributions[0]
    for item in attributions[1:]:
        if item.weight >= best.weight:
            best = item
    return best.click
