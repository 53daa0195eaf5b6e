# app/schemas/payout.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class Payout(BaseModel):
    id: int
    payout_type: str
    affiliate_id: Optional[int]
    agency_id: Optional[int]
    event_id: Optional[int]
    organizer_id: int
    payout_period_start: datetime
    payout_period_end: datetime
    total_conversions: int
    total_revenue_generated: float
    gross_commission: float
    deductions: float
    net_payout_amount: float
    payment_reference: Optional[str]
    payout_status: str
    scheduled_at: Optional[datetime]
    processed_at: Optional[datetime]
    completed_at: Optional[datetime]
    failed_at: Optional[datetime]
    failure_reason: Optional[str]
    conversion_ids: List[int]
    created_at: datetime

    class Config:
        from_attributes = True


class PayoutApproveRequest(BaseModel):
    payment_reference: Optional[str] = Field(None, max_length=200)


class PayoutRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class PayoutBatchProcessRequest(BaseModel):
    payout_ids: List[int] = Field(..., min_length=1)
    payment_reference: Optional[str] = Field(None, max_length=200)


class PayoutBatchProcessResult(BaseModel):
    completed: List[int]
    # Выплаты, которые не были в допустимом статусе к моменту обработки
    skipped: List[int]
