# app/models/payout.py

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text

from app.db.session import Base
from app.utils.dates import utcnow

PAYOUT_TYPES = ("affiliate", "agency")
PAYOUT_STATUSES = ("pending", "scheduled", "processing", "completed", "failed", "cancelled")


class AffiliatePayout(Base):
    """Пакетная выплата одному получателю по одному событию за период."""
    __tablename__ = "affiliate_payouts"

    id = Column(Integer, primary_key=True, index=True)
    # 'affiliate' или 'agency' - определяет, какую "ногу" конверсий покрывает выплата
    payout_type = Column(String(20), nullable=False)
    affiliate_id = Column(Integer, ForeignKey("affiliates.id"), nullable=True)
    agency_id = Column(Integer, ForeignKey("marketing_agencies.id"), nullable=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    payout_period_start = Column(DateTime, nullable=False)
    payout_period_end = Column(DateTime, nullable=False)
    total_conversions = Column(Integer, nullable=False, default=0)
    total_revenue_generated = Column(Float, nullable=False, default=0)
    gross_commission = Column(Float, nullable=False)
    deductions = Column(Float, nullable=False, default=0)
    net_payout_amount = Column(Float, nullable=False)

    payment_reference = Column(String(200), nullable=True)

    # 'pending' -> 'scheduled' -> 'processing' -> 'completed' | 'failed' | 'cancelled'
    payout_status = Column(String(20), nullable=False, default="pending")
    scheduled_at = Column(DateTime, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)

    conversion_ids = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_affiliate_payouts_affiliate_status", "affiliate_id", "payout_status"),
        Index("ix_affiliate_payouts_agency_status", "agency_id", "payout_status"),
        Index("ix_affiliate_payouts_status_scheduled", "payout_status", "scheduled_at"),
    )
