# app/routers/commission_config.py

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.dependencies import get_db, require_roles
from app.models.user import User
from app.schemas.commission import (
    CommissionConfigCreate, CommissionConfigResponse, CommissionConfigUpdate,
    CommissionPreviewRequest, CommissionPreviewResponse,
)
from app.services import commission as commission_service

logger = logging.getLogger(__name__)
router = APIRouter()

organizer_only = require_roles("organizer")


@router.post(
    "/events/{event_id}/commission-config",
    response_model=CommissionConfigResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_commission_config(
    event_id: int,
    data: CommissionConfigCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(organizer_only),
):
    """Создает политику комиссий события. Незаполненные поля берутся из значений по умолчанию."""
    return commission_service.create_config(db, event_id, data, current_user)


@router.get("/events/{event_id}/commission-config", response_model=CommissionConfigResponse)
def get_commission_config(
    event_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(organizer_only),
):
    return commission_service.get_config(db, event_id, current_user)


@router.patch("/events/{event_id}/commission-config", response_model=CommissionConfigResponse)
def update_commission_config(
    event_id: int,
    data: CommissionConfigUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(organizer_only),
):
    """
    Частично обновляет политику. Уже записанные конверсии не пересчитываются:
    в каждой хранится снимок политики на момент покупки.
    """
    return commission_service.update_config(db, event_id, data, current_user)


@router.post("/events/{event_id}/commission-config/preview", response_model=CommissionPreviewResponse)
def preview_commission(
    event_id: int,
    data: CommissionPreviewRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(organizer_only),
):
    """Раскладка комиссий для гипотетической цены билета. Ничего не сохраняет."""
    return commission_service.preview(db, event_id, data, current_user)
