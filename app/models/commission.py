# app/models/commission.py

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.db.session import Base
from app.utils.dates import utcnow

PLATFORM_FEE_TYPES = ("percentage", "fixed", "hybrid")
COMMISSION_TYPES = ("percentage", "fixed")
AFFILIATE_COMMISSION_BASES = ("ticket_price", "organizer_revenue", "agency_revenue")
ATTRIBUTION_MODELS = ("last_click", "first_click", "linear", "time_decay")
PAYOUT_FREQUENCIES = ("immediate", "daily", "weekly", "monthly", "manual")


class EventCommissionConfig(Base):
    """Политика комиссий события. Ровно одна на событие, пишет ее организатор."""
    __tablename__ = "event_commission_configs"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), unique=True, nullable=False)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Комиссия платформы
    platform_fee_type = Column(String(20), nullable=False, default="percentage")
    platform_fee_percentage = Column(Float, nullable=False, default=5.0)
    platform_fee_fixed = Column(Float, nullable=False, default=0)
    platform_fee_cap = Column(Float, nullable=True)

    # Основное агентство
    primary_agency_id = Column(Integer, ForeignKey("marketing_agencies.id"), nullable=True)
    primary_agency_commission_type = Column(String(20), nullable=False, default="percentage")
    primary_agency_commission_rate = Column(Float, nullable=False, default=0)
    primary_agency_commission_fixed = Column(Float, nullable=False, default=0)

    # Партнеры
    affiliate_commission_enabled = Column(Boolean, nullable=False, default=True)
    affiliate_commission_type = Column(String(20), nullable=False, default="percentage")
    affiliate_commission_rate = Column(Float, nullable=False, default=0)
    affiliate_commission_fixed = Column(Float, nullable=False, default=0)
    # 'ticket_price', 'organizer_revenue', 'agency_revenue'
    affiliate_commission_base = Column(String(20), nullable=False, default="organizer_revenue")

    # Многоуровневая программа: ставки берутся от комиссии партнера
    enable_multi_tier = Column(Boolean, nullable=False, default=False)
    tier_2_commission_rate = Column(Float, nullable=True)
    tier_3_commission_rate = Column(Float, nullable=True)

    # Атрибуция
    attribution_model = Column(String(20), nullable=False, default="last_click")
    attribution_window_days = Column(Integer, nullable=False, default=30)
    allow_self_referral = Column(Boolean, nullable=False, default=False)
    allow_duplicate_conversions = Column(Boolean, nullable=False, default=False)

    # Выплаты
    payout_frequency = Column(String(20), nullable=False, default="weekly")
    payout_delay_days = Column(Integer, nullable=False, default=7)
    minimum_payout_amount = Column(Float, nullable=False, default=50.0)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    event = relationship("Event", back_populates="commission_config")

    def to_snapshot(self) -> dict:
        """Копия политики для "заморозки" в записи конверсии."""
        snapshot = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            snapshot[column.name] = value.isoformat() if hasattr(value, "isoformat") else value
        return snapshot
