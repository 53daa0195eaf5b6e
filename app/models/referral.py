# app/models/referral.py

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text,
)
from sqlalchemy.orm import relationship

from app.db.session import Base
from app.utils.dates import utcnow

LINK_STATUSES = ("active", "paused", "expired")
DEVICE_TYPES = ("mobile", "tablet", "desktop")


class ReferralLink(Base):
    __tablename__ = "referral_links"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)

    # Владелец ссылки: ровно один из двух
    affiliate_id = Column(Integer, ForeignKey("affiliates.id"), nullable=True, index=True)
    agency_id = Column(Integer, ForeignKey("marketing_agencies.id"), nullable=True, index=True)

    referral_code = Column(String(50), unique=True, index=True, nullable=False)
    campaign_name = Column(String(200), nullable=True)
    utm_source = Column(String(100), nullable=True)
    utm_medium = Column(String(100), nullable=True)
    utm_campaign = Column(String(100), nullable=True)
    utm_content = Column(String(200), nullable=True)
    custom_landing_page_url = Column(Text, nullable=True)
    short_code = Column(String(20), unique=True, nullable=True)

    # 'active', 'paused', 'expired'
    status = Column(String(20), nullable=False, default="active", server_default="active")
    expires_at = Column(DateTime, nullable=True)
    max_uses = Column(Integer, nullable=True)
    # Сколько конверсий уже засчитано по ссылке
    current_uses = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    # Мягкое удаление: ссылку нельзя стереть, пока на нее ссылаются конверсии
    deleted_at = Column(DateTime, nullable=True)

    event = relationship("Event")
    affiliate = relationship("Affiliate")
    agency = relationship("MarketingAgency")
    clicks = relationship("ReferralClick", back_populates="link")

    __table_args__ = (
        CheckConstraint(
            "(affiliate_id IS NULL) <> (agency_id IS NULL)",
            name="ck_referral_links_single_owner",
        ),
        Index("ix_referral_links_event_status", "event_id", "status"),
    )

    def is_trackable(self, now) -> bool:
        """Ссылка участвует в трекинге: активна, не удалена, не истекла и не исчерпана."""
        if self.status != "active" or self.deleted_at is not None:
            return False
        if self.expires_at is not None and self.expires_at <= now:
            return False
        if self.max_uses is not None and (self.current_uses or 0) >= self.max_uses:
            return False
        return True


class ReferralClick(Base):
    __tablename__ = "referral_clicks"

    id = Column(Integer, primary_key=True, index=True)
    link_id = Column(Integer, ForeignKey("referral_links.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    affiliate_id = Column(Integer, ForeignKey("affiliates.id"), nullable=True)
    agency_id = Column(Integer, ForeignKey("marketing_agencies.id"), nullable=True)

    # Хеш от (IP, User-Agent) - сам IP не храним
    visitor_id = Column(String(64), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    user_agent = Column(Text, nullable=True)
    referrer_url = Column(Text, nullable=True)
    landing_page_url = Column(Text, nullable=False)

    # Геолокация не реализована, страна всегда 'ZZ'
    country = Column(String(2), nullable=True)
    device_type = Column(String(10), nullable=True)
    browser = Column(String(50), nullable=True)
    os = Column(String(50), nullable=True)

    clicked_at = Column(DateTime, default=utcnow, nullable=False)
    converted = Column(Boolean, nullable=False, default=False, server_default="false")
    # Без внешнего ключа: конверсия в свою очередь ссылается на клик
    conversion_id = Column(Integer, nullable=True, index=True)

    link = relationship("ReferralLink", back_populates="clicks")

    __table_args__ = (
        Index("ix_referral_clicks_link_visitor_time", "link_id", "visitor_id", "clicked_at"),
        Index("ix_referral_clicks_converted_time", "converted", "clicked_at"),
        Index("ix_referral_clicks_event_time", "event_id", "clicked_at"),
    )
