# app/schemas/commission.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

PlatformFeeType = Literal["percentage", "fixed", "hybrid"]
CommissionType = Literal["percentage", "fixed"]
CommissionBase = Literal["ticket_price", "organizer_revenue", "agency_revenue"]
AttributionModel = Literal["last_click", "first_click", "linear", "time_decay"]
PayoutFrequency = Literal["immediate", "daily", "weekly", "monthly", "manual"]


class CommissionConfigFields(BaseModel):
    """Поля политики комиссий. Не переданные поля получают значения по умолчанию из настроек."""
    platform_fee_type: Optional[PlatformFeeType] = None
    platform_fee_percentage: Optional[float] = Field(None, ge=0, le=100)
    platform_fee_fixed: Optional[float] = Field(None, ge=0)
    platform_fee_cap: Optional[float] = Field(None, ge=0)

    primary_agency_id: Optional[int] = None
    primary_agency_commission_type: Optional[CommissionType] = None
    primary_agency_commission_rate: Optional[float] = Field(None, ge=0, le=100)
    primary_agency_commission_fixed: Optional[float] = Field(None, ge=0)

    affiliate_commission_enabled: Optional[bool] = None
    affiliate_commission_type: Optional[CommissionType] = None
    affiliate_commission_rate: Optional[float] = Field(None, ge=0, le=100)
    affiliate_commission_fixed: Optional[float] = Field(None, ge=0)
    affiliate_commission_base: Optional[CommissionBase] = None

    enable_multi_tier: Optional[bool] = None
    tier_2_commission_rate: Optional[float] = Field(None, ge=0, le=100)
    tier_3_commission_rate: Optional[float] = Field(None, ge=0, le=100)

    attribution_model: Optional[AttributionModel] = None
    attribution_window_days: Optional[int] = Field(None, ge=1, le=365)
    allow_self_referral: Optional[bool] = None
    allow_duplicate_conversions: Optional[bool] = None

    payout_frequency: Optional[PayoutFrequency] = None
    payout_delay_days: Optional[int] = Field(None, ge=0, le=180)
    minimum_payout_amount: Optional[float] = Field(None, ge=0)


class CommissionConfigCreate(CommissionConfigFields):
    pass


class CommissionConfigUpdate(CommissionConfigFields):
    pass


class CommissionConfigResponse(BaseModel):
    id: int
    event_id: int
    organizer_id: int

    platform_fee_type: str
    platform_fee_percentage: float
    platform_fee_fixed: float
    platform_fee_cap: Optional[float]

    primary_agency_id: Optional[int]
    primary_agency_commission_type: str
    primary_agency_commission_rate: float
    primary_agency_commission_fixed: float

    affiliate_commission_enabled: bool
    affiliate_commission_type: str
    affiliate_commission_rate: float
    affiliate_commission_fixed: float
    affiliate_commission_base: str

    enable_multi_tier: bool
    tier_2_commission_rate: Optional[float]
    tier_3_commission_rate: Optional[float]

    attribution_model: str
    attribution_window_days: int
    allow_self_referral: bool
    allow_duplicate_conversions: bool

    payout_frequency: str
    payout_delay_days: int
    minimum_payout_amount: float

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CommissionPreviewRequest(BaseModel):
    """Гипотетическая цена билета и (необязательно) несохраненные изменения политики."""
    ticket_price: float = Field(..., ge=0)
    has_agency: bool = True
    has_affiliate: bool = True
    overrides: Optional[CommissionConfigUpdate] = None


class CommissionPreviewResponse(BaseModel):
    ticket_price: float
    platform_fee: float
    organizer_revenue: float
    primary_agency_commission: float
    affiliate_base: float
    affiliate_commission: float
    tier_2_affiliate_commission: Optional[float]
    organizer_net: float
    calculation_breakdown: Dict[str, Any]
    # Ставки сохраненной политики прошли проверку, но для этой цены сумма может уйти в минус
    warnings: List[str] = []
