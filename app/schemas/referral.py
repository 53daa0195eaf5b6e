# app/schemas/referral.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

LinkStatus = Literal["active", "paused", "expired"]


class ReferralLinkCreate(BaseModel):
    """
    Создание ссылки. Партнер и агентство получают ссылку на себя автоматически;
    организатор должен указать ровно одного получателя.
    """
    affiliate_id: Optional[int] = None
    agency_id: Optional[int] = None
    referral_code: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9_-]{3,50}$")
    campaign_name: Optional[str] = Field(None, max_length=200)
    utm_source: Optional[str] = Field(None, max_length=100)
    utm_medium: Optional[str] = Field(None, max_length=100)
    utm_campaign: Optional[str] = Field(None, max_length=100)
    utm_content: Optional[str] = Field(None, max_length=200)
    custom_landing_page_url: Optional[str] = Field(None, pattern=r"^(/|https://|http://)")
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)


class ReferralLinkUpdate(BaseModel):
    """Реферальный код не меняется: на него уже могут ссылаться выданные куки."""
    campaign_name: Optional[str] = Field(None, max_length=200)
    utm_source: Optional[str] = Field(None, max_length=100)
    utm_medium: Optional[str] = Field(None, max_length=100)
    utm_campaign: Optional[str] = Field(None, max_length=100)
    utm_content: Optional[str] = Field(None, max_length=200)
    custom_landing_page_url: Optional[str] = Field(None, pattern=r"^(/|https://|http://)")
    status: Optional[LinkStatus] = None
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)


class ReferralLink(BaseModel):
    id: int
    event_id: int
    affiliate_id: Optional[int]
    agency_id: Optional[int]
    referral_code: str
    campaign_name: Optional[str]
    utm_source: Optional[str]
    utm_medium: Optional[str]
    utm_campaign: Optional[str]
    utm_content: Optional[str]
    custom_landing_page_url: Optional[str]
    short_code: Optional[str]
    status: str
    expires_at: Optional[datetime]
    max_uses: Optional[int]
    current_uses: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ReferralLinkPreview(BaseModel):
    referral_code: str
    url: str
    short_url: Optional[str] = None


class ShortLink(BaseModel):
    short_code: str
    short_url: str
