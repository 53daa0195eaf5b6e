# app/services/commission.py

import logging
from typing import Any, Dict

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.crud import affiliate as crud_affiliate
from app.crud import commission as crud_commission
from app.crud import event as crud_event
from app.models.commission import EventCommissionConfig
from app.models.event import Event
from app.models.user import User
from app.schemas.commission import (
    CommissionConfigCreate, CommissionConfigUpdate, CommissionPreviewRequest, CommissionPreviewResponse,
)
from app.services.commission_calculator import (
    build_calculation_breakdown, calculate_commission, validate_commission_rates,
)

logger = logging.getLogger(__name__)

# Поля, которые можно явно сбросить в NULL через PATCH
NULLABLE_FIELDS = {"platform_fee_cap", "primary_agency_id", "tier_2_commission_rate", "tier_3_commission_rate"}


def config_defaults() -> Dict[str, Any]:
    """Политика по умолчанию для нового события."""
    return {
        "platform_fee_type": "percentage",
        "platform_fee_percentage": settings.DEFAULT_PLATFORM_FEE_PERCENTAGE,
        "platform_fee_fixed": 0.0,
        "platform_fee_cap": None,
        "primary_agency_id": None,
        "primary_agency_commission_type": "percentage",
        "primary_agency_commission_rate": 0.0,
        "primary_agency_commission_fixed": 0.0,
        "affiliate_commission_enabled": True,
        "affiliate_commission_type": "percentage",
        "affiliate_commission_rate": 0.0,
        "affiliate_commission_fixed": 0.0,
        "affiliate_commission_base": "organizer_revenue",
        "enable_multi_tier": False,
        "tier_2_commission_rate": None,
        "tier_3_commission_rate": None,
        "attribution_model": "last_click",
        "attribution_window_days": settings.DEFAULT_ATTRIBUTION_WINDOW_DAYS,
        "allow_self_referral": False,
        "allow_duplicate_conversions": False,
        "payout_frequency": "weekly",
        "payout_delay_days": settings.DEFAULT_PAYOUT_DELAY_DAYS,
        "minimum_payout_amount": settings.DEFAULT_MINIMUM_PAYOUT_AMOUNT,
    }


def get_owned_event(db: Session, event_id: int, user: User) -> Event:
    """Событие, которым управляет пользователь. 404 - нет события, 403 - чужое событие."""
    event = crud_event.get_event(db, event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    if user.role != "admin" and event.organizer_id != user.id:
        logger.warning(f"User {user.id} tried to access commission config of event {event_id} owned by {event.organizer_id}.")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return event


def _current_values(config: EventCommissionConfig) -> Dict[str, Any]:
    return {name: getattr(config, name) for name in config_defaults()}


def _check_rates(values: Dict[str, Any]):
    errors = validate_commission_rates(values)
    if errors:
        logger.info(f"Commission config rejected: {errors}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=errors)


def _check_agency(db: Session, agency_id: int | None):
    if agency_id is not None and crud_affiliate.get_agency(db, agency_id) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Agency {agency_id} not found")


def _changes(data: CommissionConfigUpdate) -> Dict[str, Any]:
    changes = data.model_dump(exclude_unset=True)
    return {k: v for k, v in changes.items() if v is not None or k in NULLABLE_FIELDS}


def get_config(db: Session, event_id: int, user: User) -> EventCommissionConfig:
    get_owned_event(db, event_id, user)
    config = crud_commission.get_config_by_event(db, event_id)
    if config is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Commission config not found")
    return config


def create_config(db: Session, event_id: int, data: CommissionConfigCreate, user: User) -> EventCommissionConfig:
    event = get_owned_event(db, event_id, user)
    if crud_commission.get_config_by_event(db, event_id) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Commission config already exists for this event")

    values = config_defaults()
    values.update(data.model_dump(exclude_none=True))
    _check_rates(values)
    _check_agency(db, values["primary_agency_id"])

    config = EventCommissionConfig(event_id=event.id, organizer_id=event.organizer_id, **values)
    db.add(config)
    db.commit()
    db.refresh(config)
    logger.info(f"Commission config {config.id} created for event {event_id} by user {user.id}.")
    return config


def update_config(db: Session, event_id: int, data: CommissionConfigUpdate, user: User) -> EventCommissionConfig:
    config = get_config(db, event_id, user)

    changes = _changes(data)
    values = _current_values(config)
    values.update(changes)
    _check_rates(values)
    if "primary_agency_id" in changes:
        _check_agency(db, changes["primary_agency_id"])

    for key, value in changes.items():
        setattr(config, key, value)
    db.commit()
    db.refresh(config)
    logger.info(f"Commission config for event {event_id} updated by user {user.id}: {sorted(changes)}")
    return config


def preview(db: Session, event_id: int, request: CommissionPreviewRequest, user: User) -> CommissionPreviewResponse:
    """Расчет для гипотетической цены. Ничего не сохраняет."""
    get_owned_event(db, event_id, user)
    config = crud_commission.get_config_by_event(db, event_id)
    values = _current_values(config) if config is not None else config_defaults()
    if request.overrides is not None:
        values.update(_changes(request.overrides))
    _check_rates(values)

    breakdown = calculate_commission(
        request.ticket_price, values, has_agency=request.has_agency, has_affiliate=request.has_affiliate
    )
    warnings = []
    if breakdown.organizer_net < 0:
        warnings.append("Commissions exceed organizer revenue at this ticket price; conversions would be refused.")

    return CommissionPreviewResponse(
        **breakdown.as_dict(),
        calculation_breakdown=build_calculation_breakdown(breakdown, values),
        warnings=warnings,
    )
