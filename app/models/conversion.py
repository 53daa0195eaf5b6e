# app/models/conversion.py

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from app.db.session import Base
from app.utils.dates import utcnow

CONVERSION_STATUSES = ("pending", "confirmed", "refunded", "disputed")
PAYOUT_LEG_STATUSES = ("pending", "scheduled", "paid", "failed")


class ReferralConversion(Base):
    """
    Неизменяемый финансовый снимок одной покупки по реферальной ссылке.
    Меняются только статусы выплат (отдельно для агентства и для партнера).
    """
    __tablename__ = "referral_conversions"

    id = Column(Integer, primary_key=True, index=True)
    click_id = Column(Integer, ForeignKey("referral_clicks.id"), nullable=False)
    link_id = Column(Integer, ForeignKey("referral_links.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    # Один билет - не больше одной конверсии
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, unique=True)

    affiliate_id = Column(Integer, ForeignKey("affiliates.id"), nullable=True)
    agency_id = Column(Integer, ForeignKey("marketing_agencies.id"), nullable=True)
    attribution_model_used = Column(String(20), nullable=False, default="last_click")
    # [{"click_id": ..., "weight": ..., "clicked_at": ...}, ...]
    attributed_clicks = Column(JSON, nullable=False, default=list)

    customer_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    customer_email = Column(String(255), nullable=True)

    ticket_price = Column(Float, nullable=False)
    platform_fee = Column(Float, nullable=False)
    organizer_revenue = Column(Float, nullable=False)
    primary_agency_commission = Column(Float, nullable=False, default=0)
    affiliate_commission = Column(Float, nullable=False, default=0)
    tier_2_affiliate_commission = Column(Float, nullable=True)
    organizer_net = Column(Float, nullable=False)

    commission_config_snapshot = Column(JSON, nullable=True)
    calculation_breakdown = Column(JSON, nullable=True)

    # 'pending', 'confirmed', 'refunded', 'disputed'
    conversion_status = Column(String(20), nullable=False, default="pending")
    is_fraudulent = Column(Boolean, nullable=False, default=False)
    fraud_reason = Column(Text, nullable=True)

    # 'pending', 'scheduled', 'paid', 'failed'
    affiliate_payout_status = Column(String(20), nullable=False, default="pending")
    affiliate_payout_id = Column(Integer, ForeignKey("affiliate_payouts.id"), nullable=True)
    agency_payout_status = Column(String(20), nullable=False, default="pending")
    agency_payout_id = Column(Integer, ForeignKey("affiliate_payouts.id"), nullable=True)

    converted_at = Column(DateTime, default=utcnow, nullable=False)
    confirmed_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    link = relationship("ReferralLink")
    click = relationship("ReferralClick", foreign_keys=[click_id])

    __table_args__ = (
        Index("ix_referral_conversions_affiliate_time", "affiliate_id", "converted_at"),
        Index("ix_referral_conversions_agency_time", "agency_id", "converted_at"),
        Index("ix_referral_conversions_event_time", "event_id", "converted_at"),
        Index("ix_referral_conversions_status_payout", "conversion_status", "affiliate_payout_status"),
    )
