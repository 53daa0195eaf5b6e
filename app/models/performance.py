# app/models/performance.py

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint

from app.db.session import Base
from app.utils.dates import utcnow

TIME_PERIODS = ("today", "week", "month", "quarter", "year", "all_time")


class AffiliatePerformanceCache(Base):
    """
    Производная сводка по партнеру за период. Не источник истины:
    таблицу можно очистить и пересчитать из кликов и конверсий.
    """
    __tablename__ = "affiliate_performance_cache"

    id = Column(Integer, primary_key=True, index=True)
    affiliate_id = Column(Integer, ForeignKey("affiliates.id"), nullable=False)
    time_period = Column(String(20), nullable=False)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)

    total_clicks = Column(Integer, nullable=False, default=0)
    unique_visitors = Column(Integer, nullable=False, default=0)
    desktop_clicks = Column(Integer, nullable=False, default=0)
    mobile_clicks = Column(Integer, nullable=False, default=0)
    tablet_clicks = Column(Integer, nullable=False, default=0)

    total_conversions = Column(Integer, nullable=False, default=0)
    conversion_rate = Column(Float, nullable=False, default=0)
    total_revenue_generated = Column(Float, nullable=False, default=0)
    total_commission_earned = Column(Float, nullable=False, default=0)

    last_updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("affiliate_id", "time_period", name="uq_performance_affiliate_period"),
    )
