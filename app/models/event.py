# app/models/event.py
# Минимальные модели внешних сущностей: события и билеты ведет основной сервис,
# здесь они нужны только как источник цены, владельца и организатора.

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.db.session import Base
from app.utils.dates import utcnow


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    slug = Column(String(200), unique=True, nullable=False)

    # 'draft', 'published', 'cancelled'
    status = Column(String(20), nullable=False, default="draft", server_default="draft")

    created_at = Column(DateTime, default=utcnow, nullable=False)

    organizer = relationship("User")
    commission_config = relationship("EventCommissionConfig", back_populates="event", uselist=False)


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    owner_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    holder_email = Column(String(255), nullable=True)
    price = Column(Float, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    event = relationship("Event")
