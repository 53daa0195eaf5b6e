# app/routers/referral_links.py

import logging
from typing import List

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.core.limiter import limiter
from app.dependencies import get_current_user, get_db, require_roles
from app.models.user import User
from app.schemas.referral import (
    ReferralLink, ReferralLinkCreate, ReferralLinkPreview, ReferralLinkUpdate, ShortLink,
)
from app.services import referral_links as referral_links_service

logger = logging.getLogger(__name__)
router = APIRouter()

# Публичное перенаправление по короткой ссылке, подключается без префикса /api
public_router = APIRouter()


@router.post("/events/{event_id}/referral-links", response_model=ReferralLink, status_code=status.HTTP_201_CREATED)
def create_referral_link(
    event_id: int,
    data: ReferralLinkCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("organizer", "affiliate", "agency")),
):
    return referral_links_service.create_link(db, event_id, data, current_user)


@router.get("/events/{event_id}/referral-links", response_model=List[ReferralLink])
def list_event_referral_links(
    event_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("organizer")),
):
    """[ОРГАНИЗАТОР] Все неудаленные ссылки события."""
    return referral_links_service.list_links_for_event(db, event_id, current_user)


@router.get("/affiliates/referral-links", response_model=List[ReferralLink])
def list_my_referral_links(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("affiliate", "agency")),
):
    return referral_links_service.list_links_for_current_user(db, current_user)


@router.get("/referral-links/{link_id}/preview", response_model=ReferralLinkPreview)
def preview_referral_link(
    link_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return referral_links_service.preview_link(db, link_id, current_user)


@router.patch("/referral-links/{link_id}", response_model=ReferralLink)
def update_referral_link(
    link_id: int,
    data: ReferralLinkUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return referral_links_service.update_link(db, link_id, data, current_user)


@router.delete("/referral-links/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_referral_link(
    link_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    referral_links_service.delete_link(db, link_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/referral-links/{link_id}/shorten", response_model=ShortLink)
@limiter.limit("10/minute")
def shorten_referral_link(
    request: Request,
    link_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Выдает ссылке короткий код. Повторный вызов возвращает уже выданный код."""
    return referral_links_service.shorten_link(db, link_id, current_user)


@public_router.get("/r/{short_code}", include_in_schema=False)
def redirect_short_link(short_code: str, db: Session = Depends(get_db)):
    return RedirectResponse(
        url=referral_links_service.resolve_short_code(db, short_code),
        status_code=status.HTTP_302_FOUND,
    )
