# app/schemas/performance.py
from datetime import datetime

from pydantic import BaseModel


class AffiliatePerformance(BaseModel):
    affiliate_id: int
    time_period: str
    period_start: datetime
    period_end: datetime
    total_clicks: int
    unique_visitors: int
    desktop_clicks: int
    mobile_clicks: int
    tablet_clicks: int
    total_conversions: int
    conversion_rate: float
    total_revenue_generated: float
    total_commission_earned: float
    last_updated_at: datetime

    class Config:
        from_attributes = True
