# app/schemas/conversion.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class Conversion(BaseModel):
    id: int
    click_id: int
    link_id: int
    event_id: int
    ticket_id: int
    affiliate_id: Optional[int]
    agency_id: Optional[int]
    attribution_model_used: str
    attributed_clicks: List[Dict[str, Any]]
    ticket_price: float
    platform_fee: float
    organizer_revenue: float
    primary_agency_commission: float
    affiliate_commission: float
    tier_2_affiliate_commission: Optional[float]
    organizer_net: float
    conversion_status: str
    affiliate_payout_status: str
    agency_payout_status: str
    converted_at: datetime

    class Config:
        from_attributes = True


class ConversionResult(BaseModel):
    """Ответ внутреннему вызову: конверсия может и не состояться, это не ошибка."""
    recorded: bool
    conversion: Optional[Conversion] = None
