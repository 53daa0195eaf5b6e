# app/models/user.py

from sqlalchemy import Column, DateTime, Integer, String

from app.db.session import Base
from app.utils.dates import utcnow

# Роли пользователей платформы
USER_ROLES = ("organizer", "affiliate", "agency", "admin")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(200), nullable=True)

    # 'organizer', 'affiliate', 'agency', 'admin'
    role = Column(String(20), nullable=False, default="organizer", server_default="organizer")

    created_at = Column(DateTime, default=utcnow, nullable=False)
