# app/routers/payouts.py

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.dependencies import get_admin_user, get_db, require_roles
from app.models.user import User
from app.schemas.payout import (
    Payout, PayoutApproveRequest, PayoutBatchProcessRequest, PayoutBatchProcessResult, PayoutRejectRequest,
)
from app.services import payouts as payouts_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/organizer/payouts/pending", response_model=List[Payout])
def list_pending_payouts(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("organizer")),
):
    """[ОРГАНИЗАТОР] Выплаты, ожидающие решения."""
    return payouts_service.list_pending_for_organizer(db, current_user)


@router.post("/organizer/payouts/{payout_id}/approve", response_model=Payout)
def approve_payout(
    payout_id: int,
    data: PayoutApproveRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("organizer")),
):
    payment_reference = data.payment_reference if data else None
    return payouts_service.approve(db, payout_id, current_user, payment_reference)


@router.post("/organizer/payouts/{payout_id}/reject", response_model=Payout)
def reject_payout(
    payout_id: int,
    data: PayoutRejectRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("organizer")),
):
    """[ОРГАНИЗАТОР] Отменяет выплату; ее конверсии вернутся в очередь на следующую выплату."""
    return payouts_service.reject(db, payout_id, current_user, data.reason)


@router.get("/affiliates/payouts", response_model=List[Payout])
def list_my_payouts(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("affiliate", "agency")),
):
    return payouts_service.list_for_current_payee(db, current_user)


@router.post("/admin/payouts/batch-process", response_model=PayoutBatchProcessResult)
def batch_process_payouts(
    data: PayoutBatchProcessRequest,
    db: Session = Depends(get_db),
    admin_user: User = Depends(get_admin_user),
):
    """[АДМИН] Отмечает выплаты выполненными после перевода денег."""
    logger.info(f"Admin {admin_user.id} is completing payouts {data.payout_ids}.")
    return payouts_service.batch_complete(db, data.payout_ids, data.payment_reference)
