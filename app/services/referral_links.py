# app/services/referral_links.py

import logging
import secrets
import string
from typing import List
from urllib.parse import urlencode

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.crud import affiliate as crud_affiliate
from app.crud import event as crud_event
from app.crud import referral as crud_referral
from app.models.referral import ReferralLink
from app.models.user import User
from app.schemas.referral import ReferralLinkCreate, ReferralLinkPreview, ReferralLinkUpdate, ShortLink
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

BASE62_ALPHABET = string.digits + string.ascii_letters
CODE_ALPHABET = string.ascii_uppercase + string.digits
SHORT_CODE_LENGTH = 6
SHORT_CODE_ATTEMPTS = 5
REFERRAL_CODE_PREFIX = "RL-"
REFERRAL_CODE_LENGTH = 8


def generate_referral_code() -> str:
    return REFERRAL_CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


def generate_short_code(length: int = SHORT_CODE_LENGTH) -> str:
    return "".join(secrets.choice(BASE62_ALPHABET) for _ in range(length))


def build_link_url(link: ReferralLink) -> str:
    """Публичный адрес ссылки: своя посадочная страница или страница события, плюс ?ref и UTM-метки."""
    if link.custom_landing_page_url:
        base = link.custom_landing_page_url
        if base.startswith("/"):
            base = f"{settings.FRONTEND_URL.rstrip('/')}{base}"
    else:
        base = f"{settings.FRONTEND_URL.rstrip('/')}/events/{link.event.slug}"

    params = {"ref": link.referral_code}
    for name in ("utm_source", "utm_medium", "utm_campaign", "utm_content"):
        value = getattr(link, name)
        if value:
            params[name] = value
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urlencode(params)}"


def build_short_url(short_code: str) -> str:
    return f"{settings.SHORT_LINK_BASE_URL.rstrip('/')}/{short_code}"


# --- Права доступа ---

def _resolve_payee(db: Session, data: ReferralLinkCreate, user: User, event) -> tuple:
    """Определяет владельца новой ссылки: ровно одного партнера или агентство."""
    if user.role == "affiliate":
        affiliate = crud_affiliate.get_affiliate_by_user_id(db, user.id)
        if affiliate is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Affiliate profile not found")
        if affiliate.status != "active":
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Affiliate account is not active")
        return affiliate.id, None

    if user.role == "agency":
        agency = crud_affiliate.get_agency_by_user_id(db, user.id)
        if agency is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agency profile not found")
        # Агентство может выпустить ссылку на себя или на партнера из своей команды
        if data.affiliate_id is not None:
            affiliate = crud_affiliate.get_affiliate(db, data.affiliate_id)
            if affiliate is None or affiliate.agency_id != agency.id:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Affiliate is not in your agency")
            return affiliate.id, None
        return None, agency.id

    # Организатор или администратор указывают получателя явно
    if user.role != "admin" and event.organizer_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    if (data.affiliate_id is None) == (data.agency_id is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Exactly one of affiliate_id or agency_id must be provided",
        )
    if data.affiliate_id is not None and crud_affiliate.get_affiliate(db, data.affiliate_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Affiliate not found")
    if data.agency_id is not None and crud_affiliate.get_agency(db, data.agency_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agency not found")
    return data.affiliate_id, data.agency_id


def _can_manage(db: Session, link: ReferralLink, user: User) -> bool:
    if user.role == "admin":
        return True
    if link.event is not None and link.event.organizer_id == user.id:
        return True
    affiliate = crud_affiliate.get_affiliate_by_user_id(db, user.id)
    if affiliate is not None and link.affiliate_id == affiliate.id:
        return True
    agency = crud_affiliate.get_agency_by_user_id(db, user.id)
    if agency is not None and link.agency_id == agency.id:
        return True
    return False


def get_manageable_link(db: Session, link_id: int, user: User) -> ReferralLink:
    link = crud_referral.get_link_by_id(db, link_id)
    if link is None or link.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Referral link not found")
    if not _can_manage(db, link, user):
        logger.warning(f"User {user.id} denied access to referral link {link_id}.")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return link


# --- Операции ---

def create_link(db: Session, event_id: int, data: ReferralLinkCreate, user: User) -> ReferralLink:
    event = crud_event.get_event(db, event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    if event.status != "published":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Referral links can only be created for published events")

    affiliate_id, agency_id = _resolve_payee(db, data, user, event)

    if data.referral_code:
        if crud_referral.referral_code_exists(db, data.referral_code):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Referral code is already taken")
        referral_code = data.referral_code
    else:
        referral_code = generate_referral_code()
        while crud_referral.referral_code_exists(db, referral_code):
            referral_code = generate_referral_code()

    link = crud_referral.create_link(
        db,
        event_id=event.id,
        affiliate_id=affiliate_id,
        agency_id=agency_id,
        referral_code=referral_code,
        campaign_name=data.campaign_name,
        utm_source=data.utm_source,
        utm_medium=data.utm_medium,
        utm_campaign=data.utm_campaign,
        utm_content=data.utm_content,
        custom_landing_page_url=data.custom_landing_page_url,
        expires_at=data.expires_at,
        max_uses=data.max_uses,
        status="active",
        current_uses=0,
    )
    logger.info(f"Referral link {link.id} ('{link.referral_code}') created for event {event.id} by user {user.id}.")
    return link


def list_links_for_current_user(db: Session, user: User) -> List[ReferralLink]:
    affiliate = crud_affiliate.get_affiliate_by_user_id(db, user.id)
    if affiliate is not None:
        return crud_referral.list_links_for_affiliate(db, affiliate.id)
    agency = crud_affiliate.get_agency_by_user_id(db, user.id)
    if agency is not None:
        return crud_referral.list_links_for_agency(db, agency.id)
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Affiliate profile not found")


def list_links_for_event(db: Session, event_id: int, user: User) -> List[ReferralLink]:
    event = crud_event.get_event(db, event_id)
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    if user.role != "admin" and event.organizer_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return crud_referral.list_links_for_event(db, event_id)


def preview_link(db: Session, link_id: int, user: User) -> ReferralLinkPreview:
    link = get_manageable_link(db, link_id, user)
    return ReferralLinkPreview(
        referral_code=link.referral_code,
        url=build_link_url(link),
        short_url=build_short_url(link.short_code) if link.short_code else None,
    )


def update_link(db: Session, link_id: int, data: ReferralLinkUpdate, user: User) -> ReferralLink:
    link = get_manageable_link(db, link_id, user)
    changes = data.model_dump(exclude_unset=True)
    if "status" in changes and changes["status"] is None:
        changes.pop("status")
    for key, value in changes.items():
        setattr(link, key, value)
    db.commit()
    db.refresh(link)
    logger.info(f"Referral link {link.id} updated by user {user.id}: {sorted(changes)}")
    return link


def delete_link(db: Session, link_id: int, user: User):
    """Мягкое удаление: на ссылку могут ссылаться клики и конверсии."""
    link = get_manageable_link(db, link_id, user)
    link.status = "paused"
    link.deleted_at = utcnow()
    db.commit()
    logger.info(f"Referral link {link.id} soft-deleted by user {user.id}.")


def shorten_link(db: Session, link_id: int, user: User) -> ShortLink:
    link = get_manageable_link(db, link_id, user)
    if link.short_code:
        return ShortLink(short_code=link.short_code, short_url=build_short_url(link.short_code))

    for _ in range(SHORT_CODE_ATTEMPTS):
        candidate = generate_short_code()
        if crud_referral.short_code_exists(db, candidate):
            continue
        link.short_code = candidate
        try:
            db.commit()
        except IntegrityError:
            # Тот же код успел занять параллельный запрос
            db.rollback()
            logger.warning(f"Short code {candidate} for link {link.id} was taken concurrently. Retrying.")
            db.refresh(link)
            if link.short_code:
                return ShortLink(short_code=link.short_code, short_url=build_short_url(link.short_code))
            continue
        logger.info(f"Referral link {link.id} shortened to {candidate}.")
        return ShortLink(short_code=candidate, short_url=build_short_url(candidate))

    logger.error(f"Could not generate a unique short code for link {link.id} in {SHORT_CODE_ATTEMPTS} attempts.")
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not generate short code")


def resolve_short_code(db: Session, short_code: str) -> str:
    """Адрес для перенаправления по короткой ссылке."""
    link = crud_referral.get_link_by_short_code(db, short_code)
    if link is None or link.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Short link not found")
    return build_link_url(link)
