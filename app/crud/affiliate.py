# app/crud/affiliate.py
from sqlalchemy.orm import Session

from app.models.affiliate import Affiliate, MarketingAgency

def get_affiliate(db: Session, affiliate_id: int) -> Affiliate | None:
    return db.query(Affiliate).filter(Affiliate.id == affiliate_id).first()

def get_affiliate_by_user_id(db: Session, user_id: int) -> Affiliate | None:
    """Профиль партнера, привязанный к учетной записи пользователя."""
    return db.query(Affiliate).filter(Affiliate.user_id == user_id).first()

def get_agency(db: Session, agency_id: int) -> MarketingAgency | None:
    return db.query(MarketingAgency).filter(MarketingAgency.id == agency_id).first()

def get_agency_by_user_id(db: Session, user_id: int) -> MarketingAgency | None:
    return db.query(MarketingAgency).filter(MarketingAgency.user_id == user_id).first()
