# app/services/performance_cache.py

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from app.crud import performance as crud_performance
from app.db.session import SessionLocal
from app.models.performance import TIME_PERIODS
from app.services.commission_calculator import money
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

ALL_TIME_START = datetime(1970, 1, 1)


def period_bounds(period: str, now: datetime) -> Tuple[datetime, datetime]:
    """Календарные границы периода, заканчивающегося текущим моментом."""
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        start = day_start
    elif period == "week":
        start = day_start - timedelta(days=day_start.weekday())
    elif period == "month":
        start = day_start.replace(day=1)
    elif period == "quarter":
        start = day_start.replace(month=3 * ((now.month - 1) // 3) + 1, day=1)
    elif period == "year":
        start = day_start.replace(month=1, day=1)
    elif period == "all_time":
        start = ALL_TIME_START
    else:
        raise ValueError(f"Unknown performance period: {period}")
    return start, now


def conversion_rate(conversions: int, unique_visitors: int) -> float:
    if not unique_visitors:
        return 0.0
    return round(conversions / unique_visitors * 100, 2)


def refresh_period(db: Session, period: str, now: datetime) -> int:
    """Пересчитывает строки кеша за один период. Возвращает число обновленных партнеров."""
    start, end = period_bounds(period, now)
    clicks = crud_performance.aggregate_clicks_by_affiliate(db, start, end)
    conversions = crud_performance.aggregate_conversions_by_affiliate(db, start, end)

    affiliate_ids = set(clicks) | set(conversions) | set(crud_performance.get_cached_affiliate_ids(db, period))
    for affiliate_id in sorted(affiliate_ids):
        click_stats = clicks.get(affiliate_id, {})
        conversion_stats = conversions.get(affiliate_id, {})
        unique_visitors = click_stats.get("unique_visitors", 0)
        total_conversions = conversion_stats.get("total_conversions", 0)

        crud_performance.upsert_performance_row(
            db,
            affiliate_id,
            period,
            period_start=start,
            period_end=end,
            total_clicks=click_stats.get("total_clicks", 0),
            unique_visitors=unique_visitors,
            desktop_clicks=click_stats.get("desktop_clicks", 0),
            mobile_clicks=click_stats.get("mobile_clicks", 0),
            tablet_clicks=click_stats.get("tablet_clicks", 0),
            total_conversions=total_conversions,
            conversion_rate=conversion_rate(total_conversions, unique_visitors),
            total_revenue_generated=money(conversion_stats.get("total_revenue_generated", 0)),
            total_commission_earned=money(conversion_stats.get("total_commission_earned", 0)),
        )
    db.commit()
    return len(affiliate_ids)


def refresh_performance_cache(
    periods: Iterable[str] = ("today",),
    now: Optional[datetime] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> dict:
    """
    Пересчитывает кеш показателей партнеров. Кеш - производные данные,
    поэтому ошибка в одном периоде просто оставляет его строки до следующего запуска.
    """
    now = now or utcnow()
    refreshed = {}
    for period in periods:
        with session_factory() as db:
            try:
                refreshed[period] = refresh_period(db, period, now)
            except Exception:
                db.rollback()
                logger.error(f"Failed to refresh performance cache for period '{period}'", exc_info=True)
    return refreshed


def refresh_performance_cache_task(periods: Iterable[str] = ("today",)):
    """Фоновая задача обновления кеша показателей."""
    logger.info("--- Starting scheduled job: Refresh Affiliate Performance Cache ---")
    refreshed = refresh_performance_cache(periods)
    for period, count in refreshed.items():
        logger.info(f"Period '{period}': refreshed {count} affiliates.")
    logger.info("--- Finished scheduled job: Refresh Affiliate Performance Cache ---")


def refresh_all_periods_task():
    refresh_performance_cache_task(TIME_PERIODS)
