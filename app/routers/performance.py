# app/routers/performance.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.crud import affiliate as crud_affiliate
from app.crud import performance as crud_performance
from app.dependencies import get_db, require_roles
from app.models.user import User
from app.schemas.performance import AffiliatePerformance

router = APIRouter()


@router.get("/affiliates/performance", response_model=List[AffiliatePerformance])
def get_my_performance(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("affiliate")),
):
    """Показатели партнера из кеша. Обновляются фоновой задачей, не в реальном времени."""
    affiliate = crud_affiliate.get_affiliate_by_user_id(db, current_user.id)
    if affiliate is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Affiliate profile not found")
    return crud_performance.get_performance_for_affiliate(db, affiliate.id)
