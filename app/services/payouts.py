# app/services/payouts.py
# Ручное управление выплатами: подтверждение, отклонение, завершение пакета.

import logging
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.crud import affiliate as crud_affiliate
from app.crud import conversion as crud_conversion
from app.crud import payout as crud_payout
from app.models.payout import AffiliatePayout
from app.models.user import User
from app.schemas.payout import PayoutBatchProcessResult
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

PENDING_STATUSES = ("pending", "scheduled")
APPROVABLE_STATUSES = ("pending", "scheduled")
REJECTABLE_STATUSES = ("pending", "scheduled", "processing")
COMPLETABLE_STATUSES = ("scheduled", "processing")


def _get_payout_for_organizer(db: Session, payout_id: int, user: User) -> AffiliatePayout:
    payout = crud_payout.get_payout(db, payout_id)
    if payout is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payout not found")
    if user.role != "admin" and payout.organizer_id != user.id:
        logger.warning(f"User {user.id} tried to manage payout {payout_id} of organizer {payout.organizer_id}.")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return payout


def _conflict(payout: AffiliatePayout, action: str):
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Payout {payout.id} cannot be {action} from status '{payout.payout_status}'",
    )


def list_pending_for_organizer(db: Session, user: User) -> List[AffiliatePayout]:
    organizer_id = None if user.role == "admin" else user.id
    return crud_payout.get_payouts_for_organizer(db, organizer_id, PENDING_STATUSES)


def approve(db: Session, payout_id: int, user: User, payment_reference: Optional[str] = None) -> AffiliatePayout:
    payout = _get_payout_for_organizer(db, payout_id, user)
    values = {"payout_status": "processing", "processed_at": utcnow()}
    if payment_reference:
        values["payment_reference"] = payment_reference
    if not crud_payout.transition_payout_status(db, payout.id, APPROVABLE_STATUSES, **values):
        db.rollback()
        db.refresh(payout)
        _conflict(payout, "approved")
    db.commit()
    db.refresh(payout)
    logger.info(f"Payout {payout.id} approved by user {user.id}.")
    return payout


def reject(db: Session, payout_id: int, user: User, reason: str) -> AffiliatePayout:
    """
    Отменяет выплату и возвращает ее конверсии в 'pending',
    чтобы следующий запуск планировщика мог включить их в новую выплату.
    """
    payout = _get_payout_for_organizer(db, payout_id, user)
    now = utcnow()
    moved = crud_payout.transition_payout_status(
        db, payout.id, REJECTABLE_STATUSES,
        payout_status="cancelled", failure_reason=reason, failed_at=now,
    )
    if not moved:
        db.rollback()
        db.refresh(payout)
        _conflict(payout, "rejected")

    released = crud_conversion.release_conversions_from_payout(db, payout.payout_type, payout.id)
    db.commit()
    db.refresh(payout)
    logger.info(f"Payout {payout.id} rejected by user {user.id}; {released} conversions returned to pending.")
    return payout


def list_for_current_payee(db: Session, user: User) -> List[AffiliatePayout]:
    """История выплат текущего партнера (или агентства)."""
    affiliate = crud_affiliate.get_affiliate_by_user_id(db, user.id)
    if affiliate is not None:
        return crud_payout.get_payouts_for_affiliate(db, affiliate.id)
    agency = crud_affiliate.get_agency_by_user_id(db, user.id)
    if agency is not None:
        return crud_payout.get_payouts_for_agency(db, agency.id)
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Affiliate profile not found")


def batch_complete(db: Session, payout_ids: List[int], payment_reference: Optional[str] = None) -> PayoutBatchProcessResult:
    """
    Отмечает выплаты выполненными, а их конверсии - оплаченными.
    Выплаты в неподходящем статусе пропускаются, остальные обрабатываются.
    """
    completed, skipped = [], []
    for payout_id in dict.fromkeys(payout_ids):
        payout = crud_payout.get_payout(db, payout_id)
        if payout is None:
            skipped.append(payout_id)
            continue
        values = {"payout_status": "completed", "completed_at": utcnow()}
        if payment_reference:
            values["payment_reference"] = payment_reference
        try:
            if not crud_payout.transition_payout_status(db, payout.id, COMPLETABLE_STATUSES, **values):
                db.rollback()
                skipped.append(payout_id)
                continue
            crud_conversion.mark_conversions_paid(db, payout.payout_type, payout.id)
            db.commit()
            completed.append(payout_id)
        except Exception:
            db.rollback()
            logger.error(f"Failed to complete payout {payout_id}", exc_info=True)
            skipped.append(payout_id)

    logger.info(f"Batch processing finished: {len(completed)} completed, {len(skipped)} skipped.")
    return PayoutBatchProcessResult(completed=completed, skipped=skipped)
