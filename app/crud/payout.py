# app/crud/payout.py
from typing import Iterable, List

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.payout import AffiliatePayout

def create_payout(db: Session, **fields) -> AffiliatePayout:
    """
    Создает выплату и добавляет ее в сессию.
    Требует внешнего вызова db.commit().
    """
    payout = AffiliatePayout(**fields)
    db.add(payout)
    db.flush()
    return payout

def get_payout(db: Session, payout_id: int) -> AffiliatePayout | None:
    return db.get(AffiliatePayout, payout_id)

def get_payouts_for_organizer(db: Session, organizer_id: int | None, statuses: Iterable[str]) -> List[AffiliatePayout]:
    """Выплаты организатора в указанных статусах; organizer_id=None - по всем организаторам."""
    query = db.query(AffiliatePayout).filter(AffiliatePayout.payout_status.in_(list(statuses)))
    if organizer_id is not None:
        query = query.filter(AffiliatePayout.organizer_id == organizer_id)
    return query.order_by(AffiliatePayout.created_at.desc(), AffiliatePayout.id.desc()).all()

def get_payouts_for_affiliate(db: Session, affiliate_id: int) -> List[AffiliatePayout]:
    return db.query(AffiliatePayout).filter(
        AffiliatePayout.payout_type == "affiliate",
        AffiliatePayout.affiliate_id == affiliate_id,
    ).order_by(AffiliatePayout.created_at.desc(), AffiliatePayout.id.desc()).all()

def get_payouts_for_agency(db: Session, agency_id: int) -> List[AffiliatePayout]:
    return db.query(AffiliatePayout).filter(
        AffiliatePayout.payout_type == "agency",
        AffiliatePayout.agency_id == agency_id,
    ).order_by(AffiliatePayout.created_at.desc(), AffiliatePayout.id.desc()).all()

def transition_payout_status(db: Session, payout_id: int, from_statuses: Iterable[str], **values) -> bool:
    """
    Условный переход статуса: обновляет выплату, только если она в одном из `from_statuses`.
    Возвращает False, если выплату уже кто-то перевел. Требует внешнего вызова db.commit().
    """
    result = db.execute(
        update(AffiliatePayout)
        .where(AffiliatePayout.id == payout_id, AffiliatePayout.payout_status.in_(list(from_statuses)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
