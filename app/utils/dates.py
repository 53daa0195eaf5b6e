# app/utils/dates.py

from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Текущее время в UTC без tzinfo.
    Все даты в БД храним "наивными" в UTC, чтобы одинаково работать с PostgreSQL и SQLite.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Приводит дату с таймзоной к наивному UTC, наивную возвращает как есть."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
