# app/models/affiliate.py

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.db.session import Base
from app.utils.dates import utcnow


class MarketingAgency(Base):
    __tablename__ = "marketing_agencies"

    id = Column(Integer, primary_key=True, index=True)
    # Организатор, который привлек агентство
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # Учетная запись, под которой агентство входит в систему
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, unique=True)
    agency_name = Column(String(200), nullable=False)

    # 'active', 'suspended'
    status = Column(String(20), nullable=False, default="active", server_default="active")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    affiliates = relationship("Affiliate", back_populates="agency")


class Affiliate(Base):
    __tablename__ = "affiliates"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, unique=True)
    # Агентство, в команде которого работает партнер (если есть)
    agency_id = Column(Integer, ForeignKey("marketing_agencies.id"), nullable=True, index=True)
    # Партнер верхнего уровня для многоуровневой программы
    parent_affiliate_id = Column(Integer, ForeignKey("affiliates.id"), nullable=True, index=True)
    display_name = Column(String(200), nullable=False)

    # 'active', 'suspended', 'pending_approval', 'banned'
    status = Column(String(20), nullable=False, default="active", server_default="active")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    agency = relationship("MarketingAgency", back_populates="affiliates")
    parent = relationship("Affiliate", remote_side=[id])
