# app/services/conversion.py

import logging
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.cookie_codec import CookieCodec
from app.crud import affiliate as crud_affiliate
from app.crud import commission as crud_commission
from app.crud import conversion as crud_conversion
from app.crud import referral as crud_referral
from app.models.conversion import ReferralConversion
from app.models.event import Ticket
from app.services import attribution
from app.services.commission_calculator import build_calculation_breakdown, calculate_commission
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


class ConversionRecorder:
    """
    Превращает покупку билета посетителем с реферальной кукой в неизменяемую запись конверсии.

    Любая ошибка логируется, транзакция откатывается, и метод возвращает None:
    сбой атрибуции не должен ломать выпуск билета.
    """

    def __init__(self, codec: CookieCodec, clock: Callable = utcnow):
        self.codec = codec
        self.clock = clock

    def record_conversion(
        self, db: Session, cookie_token: Optional[str], ticket: Ticket
    ) -> Optional[ReferralConversion]:
        try:
            return self._record(db, cookie_token, ticket)
        except IntegrityError:
            # Параллельный вызов для того же билета успел записать конверсию первым
            db.rollback()
            logger.info(f"Conversion for ticket {ticket.id} was recorded concurrently.")
            return crud_conversion.get_conversion_by_ticket(db, ticket.id)
        except Exception:
            db.rollback()
            logger.error(f"Failed to record conversion for ticket {getattr(ticket, 'id', None)}", exc_info=True)
            return None

    def _record(self, db: Session, cookie_token: Optional[str], ticket: Ticket) -> Optional[ReferralConversion]:
        if not cookie_token:
            return None

        payload = self.codec.decode(cookie_token)
        if payload is None:
            logger.info(f"Referral cookie for ticket {ticket.id} is invalid or expired.")
            return None

        existing = crud_conversion.get_conversion_by_ticket(db, ticket.id)
        if existing is not None:
            logger.info(f"Ticket {ticket.id} already has conversion {existing.id}; returning it.")
            return existing

        now = self.clock()
        ref_code = payload.get("ref_code")
        link = crud_referral.get_active_link_by_code(db, ref_code) if ref_code else None
        if link is None or not link.is_trackable(now):
            logger.info(f"Referral code '{ref_code}' from cookie no longer resolves to an active link.")
            return None
        if link.event_id != ticket.event_id:
            logger.info(f"Link {link.id} belongs to event {link.event_id}, ticket {ticket.id} to event {ticket.event_id}.")
            return None

        config = crud_commission.get_config_by_event(db, ticket.event_id)
        if config is None:
            logger.info(f"Event {ticket.event_id} has no commission config; conversion not recorded.")
            return None

        affiliate = crud_affiliate.get_affiliate(db, link.affiliate_id) if link.affiliate_id else None
        if not config.allow_self_referral and affiliate is not None and affiliate.user_id is not None \
                and affiliate.user_id == ticket.owner_user_id:
            logger.warning(f"Self-referral blocked: affiliate {affiliate.id} bought ticket {ticket.id} via own link.")
            return None

        clicks = crud_referral.get_clicks_for_link(db, link.id, link.event_id)
        attributed = attribution.resolve_attribution(
            clicks, now, config.attribution_model, config.attribution_window_days
        )
        if not attributed:
            logger.info(f"No clicks on link {link.id} within the attribution window for ticket {ticket.id}.")
            return None
        primary = attribution.primary_click(attributed)

        # Комиссия агентства только по ссылке, выпущенной на агентство
        agency_id = link.agency_id

        breakdown = calculate_commission(
            ticket.price,
            config,
            has_agency=agency_id is not None,
            has_affiliate=link.affiliate_id is not None,
        )
        if breakdown.organizer_net < 0:
            logger.error(
                f"Commission config of event {ticket.event_id} yields negative organizer net "
                f"{breakdown.organizer_net} for ticket {ticket.id}; conversion refused."
            )
            return None

        conversion = crud_conversion.create_conversion(
            db,
            click_id=primary.id,
            link_id=link.id,
            event_id=ticket.event_id,
            ticket_id=ticket.id,
            affiliate_id=link.affiliate_id,
            agency_id=agency_id,
            attribution_model_used=attribution.normalize_model(config.attribution_model),
            attributed_clicks=[
                {"click_id": item.click.id, "weight": item.weight, "clicked_at": item.click.clicked_at.isoformat()}
                for item in attributed
            ],
            customer_id=ticket.owner_user_id,
            customer_email=ticket.holder_email,
            ticket_price=breakdown.ticket_price,
            platform_fee=breakdown.platform_fee,
            organizer_revenue=breakdown.organizer_revenue,
            primary_agency_commission=breakdown.primary_agency_commission,
            affiliate_commission=breakdown.affiliate_commission,
            tier_2_affiliate_commission=breakdown.tier_2_affiliate_commission,
            organizer_net=breakdown.organizer_net,
            commission_config_snapshot=config.to_snapshot(),
            calculation_breakdown=build_calculation_breakdown(breakdown, config),
            conversion_status="confirmed",
            affiliate_payout_status="pending",
            agency_payout_status="pending",
            converted_at=now,
            confirmed_at=now,
        )

        claimed = crud_referral.claim_click_for_conversion(db, primary.id, conversion.id)
        if not claimed and not config.allow_duplicate_conversions:
            db.rollback()
            logger.warning(f"Click {primary.id} is already converted; duplicate conversion for ticket {ticket.id} refused.")
            return None

        crud_referral.increment_link_uses(db, link.id)
        db.commit()
        db.refresh(conversion)
        logger.info(
            f"Recorded conversion {conversion.id} for ticket {ticket.id}: link {link.id}, "
            f"affiliate commission {conversion.affiliate_commission}, agency commission "
            f"{conversion.primary_agency_commission}."
        )
        return conversion
