# app/crud/conversion.py
from datetime import datetime
from typing import Dict, List

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.conversion import ReferralConversion

# Колонки статуса и ссылки на выплату для каждой "ноги" конверсии
PAYOUT_LEGS: Dict[str, tuple] = {
    "affiliate": ("affiliate_payout_status", "affiliate_payout_id"),
    "agency": ("agency_payout_status", "agency_payout_id"),
}

def get_conversion_by_ticket(db: Session, ticket_id: int) -> ReferralConversion | None:
    return db.query(ReferralConversion).filter(ReferralConversion.ticket_id == ticket_id).first()

def create_conversion(db: Session, **fields) -> ReferralConversion:
    """
    Создает объект конверсии и добавляет его в сессию.
    Требует внешнего вызова db.commit().
    """
    conversion = ReferralConversion(**fields)
    db.add(conversion)
    db.flush()
    return conversion

def get_unpaid_confirmed_conversions(db: Session, leg: str, converted_before: datetime) -> List[ReferralConversion]:
    """Подтвержденные конверсии, по которым выплата данной "ноги" еще не запланирована."""
    status_column, _ = PAYOUT_LEGS[leg]
    return db.query(ReferralConversion).filter(
        ReferralConversion.conversion_status == "confirmed",
        getattr(ReferralConversion, status_column) == "pending",
        ReferralConversion.converted_at < converted_before,
    ).order_by(ReferralConversion.converted_at.asc(), ReferralConversion.id.asc()).all()

def claim_conversions_for_payout(db: Session, leg: str, conversion_ids: List[int], payout_id: int) -> int:
    """
    Условный захват конверсий выплатой: переводятся только те, что еще в 'pending'.
    Возвращает число захваченных строк. Требует внешнего вызова db.commit().
    """
    status_column, payout_column = PAYOUT_LEGS[leg]
    result = db.execute(
        update(ReferralConversion)
        .where(
            ReferralConversion.id.in_(conversion_ids),
            getattr(ReferralConversion, status_column) == "pending",
        )
        .values({status_column: "scheduled", payout_column: payout_id})
        .execution_options(synchronize_session=False)
    )
    return result.rowcount

def release_conversions_from_payout(db: Session, leg: str, payout_id: int) -> int:
    """Возвращает конверсии отмененной выплаты в 'pending' и отвязывает их от нее."""
    status_column, payout_column = PAYOUT_LEGS[leg]
    result = db.execute(
        update(ReferralConversion)
        .where(getattr(ReferralConversion, payout_column) == payout_id)
        .values({status_column: "pending", payout_column: None})
        .execution_options(synchronize_session=False)
    )
    return result.rowcount

def mark_conversions_paid(db: Session, leg: str, payout_id: int) -> int:
    status_column, payout_column = PAYOUT_LEGS[leg]
    result = db.execute(
        update(ReferralConversion)
        .where(getattr(ReferralConversion, payout_column) == payout_id)
        .values({status_column: "paid"})
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
