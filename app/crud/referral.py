# app/crud/referral.py
from datetime import datetime
from typing import List

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.referral import ReferralClick, ReferralLink

# --- Ссылки ---

def get_link_by_id(db: Session, link_id: int) -> ReferralLink | None:
    return db.query(ReferralLink).filter(ReferralLink.id == link_id).first()

def get_active_link_by_code(db: Session, referral_code: str) -> ReferralLink | None:
    """Находит активную, не удаленную ссылку по коду. Срок и лимит проверяет вызывающий."""
    return db.query(ReferralLink).filter(
        ReferralLink.referral_code == referral_code,
        ReferralLink.status == "active",
        ReferralLink.deleted_at.is_(None),
    ).first()

def get_link_by_short_code(db: Session, short_code: str) -> ReferralLink | None:
    return db.query(ReferralLink).filter(ReferralLink.short_code == short_code).first()

def referral_code_exists(db: Session, referral_code: str) -> bool:
    return db.query(ReferralLink.id).filter(ReferralLink.referral_code == referral_code).first() is not None

def short_code_exists(db: Session, short_code: str) -> bool:
    return db.query(ReferralLink.id).filter(ReferralLink.short_code == short_code).first() is not None

def create_link(db: Session, **fields) -> ReferralLink:
    """Создает ссылку и сохраняет ее."""
    link = ReferralLink(**fields)
    db.add(link)
    db.commit()
    db.refresh(link)
    return link

def list_links_for_affiliate(db: Session, affiliate_id: int) -> List[ReferralLink]:
    return db.query(ReferralLink).filter(
        ReferralLink.affiliate_id == affiliate_id,
        ReferralLink.deleted_at.is_(None),
    ).order_by(ReferralLink.created_at.desc(), ReferralLink.id.desc()).all()

def list_links_for_agency(db: Session, agency_id: int) -> List[ReferralLink]:
    return db.query(ReferralLink).filter(
        ReferralLink.agency_id == agency_id,
        ReferralLink.deleted_at.is_(None),
    ).order_by(ReferralLink.created_at.desc(), ReferralLink.id.desc()).all()

def list_links_for_event(db: Session, event_id: int) -> List[ReferralLink]:
    return db.query(ReferralLink).filter(
        ReferralLink.event_id == event_id,
        ReferralLink.deleted_at.is_(None),
    ).order_by(ReferralLink.created_at.desc(), ReferralLink.id.desc()).all()

def increment_link_uses(db: Session, link_id: int):
    """Увеличивает счетчик использований ссылки. Требует внешнего вызова db.commit()."""
    db.execute(
        update(ReferralLink)
        .where(ReferralLink.id == link_id)
        .values(current_uses=ReferralLink.current_uses + 1)
    )

# --- Клики ---

def find_recent_click(db: Session, link_id: int, visitor_id: str, since: datetime) -> ReferralClick | None:
    """Ищет клик того же посетителя по той же ссылке позже `since` (для дедупликации)."""
    return db.query(ReferralClick).filter(
        ReferralClick.link_id == link_id,
        ReferralClick.visitor_id == visitor_id,
        ReferralClick.clicked_at > since,
    ).first()

def create_click(db: Session, **fields) -> ReferralClick:
    click = ReferralClick(**fields)
    db.add(click)
    db.commit()
    db.refresh(click)
    return click

def get_clicks_for_link(db: Session, link_id: int, event_id: int) -> List[ReferralClick]:
    """Вся история кликов по ссылке в порядке времени, затем вставки."""
    return db.query(ReferralClick).filter(
        ReferralClick.link_id == link_id,
        ReferralClick.event_id == event_id,
    ).order_by(ReferralClick.clicked_at.asc(), ReferralClick.id.asc()).all()

def claim_click_for_conversion(db: Session, click_id: int, conversion_id: int) -> bool:
    """
    Помечает клик сконвертированным, только если он еще не был сконвертирован.
    Возвращает False, если клик уже принадлежит другой конверсии.
    Требует внешнего вызова db.commit().
    """
    result = db.execute(
        update(ReferralClick)
        .where(ReferralClick.id == click_id, ReferralClick.converted.is_(False))
        .values(converted=True, conversion_id=conversion_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
