# app/services/payout_scheduler.py

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.crud import commission as crud_commission
from app.crud import conversion as crud_conversion
from app.crud import payout as crud_payout
from app.db.session import SessionLocal
from app.models.commission import EventCommissionConfig
from app.services.commission_calculator import money
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

PAYOUT_LEGS = ("affiliate", "agency")


@dataclass
class PayoutGroup:
    """Конверсии одного получателя по одному событию, готовые к выплате."""
    leg: str
    payee_id: int
    event_id: int
    organizer_id: int
    minimum_amount: float
    conversion_ids: List[int] = field(default_factory=list)
    revenue: float = 0.0
    gross: float = 0.0

    @property
    def key(self) -> Tuple[str, int, int]:
        return self.leg, self.payee_id, self.event_id


def period_start_for(now: datetime) -> datetime:
    """Начало периода выплаты - первое число текущего месяца."""
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def conversion_payee_and_amount(conversion, leg: str) -> Tuple[Optional[int], float]:
    if leg == "agency":
        return conversion.agency_id, conversion.primary_agency_commission or 0
    # Комиссия второго уровня входит в выплату партнера
    return conversion.affiliate_id, (conversion.affiliate_commission or 0) + (conversion.tier_2_affiliate_commission or 0)


class PayoutScheduler:
    """
    Периодически собирает созревшие подтвержденные конверсии в выплаты.

    Каждая группа обрабатывается в своей транзакции: ошибка в одной группе
    не прерывает весь запуск. Захват конверсий - условный UPDATE, поэтому два
    одновременных запуска не могут включить одну конверсию в две выплаты.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, clock: Callable = utcnow):
        self.session_factory = session_factory
        self.clock = clock

    def run(self, now: Optional[datetime] = None) -> List[int]:
        now = now or self.clock()
        with self.session_factory() as db:
            groups = self.collect_groups(db, now)

        created: List[int] = []
        for group in groups:
            if group.gross < group.minimum_amount:
                logger.info(
                    f"{group.leg.capitalize()} {group.payee_id}, event {group.event_id}: gross {group.gross} "
                    f"below minimum {group.minimum_amount}. Rolling forward."
                )
                continue
            with self.session_factory() as db:
                try:
                    payout_id = self.schedule_group(db, group, now)
                    if payout_id is not None:
                        created.append(payout_id)
                except Exception:
                    db.rollback()
                    logger.error(f"Failed to schedule payout for group {group.key}", exc_info=True)
        return created

    def collect_groups(self, db: Session, now: datetime) -> List[PayoutGroup]:
        configs: Dict[int, EventCommissionConfig] = {c.event_id: c for c in crud_commission.get_all_configs(db)}
        groups: Dict[Tuple[str, int, int], PayoutGroup] = {}

        for leg in PAYOUT_LEGS:
            for conversion in crud_conversion.get_unpaid_confirmed_conversions(db, leg, converted_before=now):
                config = configs.get(conversion.event_id)
                if config is None:
                    continue
                cutoff = now - timedelta(days=config.payout_delay_days or 0)
                if conversion.converted_at >= cutoff:
                    continue
                payee_id, amount = conversion_payee_and_amount(conversion, leg)
                if payee_id is None or amount <= 0:
                    continue

                key = (leg, payee_id, conversion.event_id)
                group = groups.get(key)
                if group is None:
                    group = groups[key] = PayoutGroup(
                        leg=leg,
                        payee_id=payee_id,
                        event_id=conversion.event_id,
                        organizer_id=config.organizer_id,
                        minimum_amount=config.minimum_payout_amount or 0,
                    )
                group.conversion_ids.append(conversion.id)
                group.revenue = money(group.revenue + conversion.ticket_price)
                group.gross = money(group.gross + amount)

        logger.info(f"Collected {len(groups)} payout groups from matured conversions.")
        return list(groups.values())

    def schedule_group(self, db: Session, group: PayoutGroup, now: datetime) -> Optional[int]:
        payout = crud_payout.create_payout(
            db,
            payout_type=group.leg,
            affiliate_id=group.payee_id if group.leg == "affiliate" else None,
            agency_id=group.payee_id if group.leg == "agency" else None,
            event_id=group.event_id,
            organizer_id=group.organizer_id,
            payout_period_start=period_start_for(now),
            payout_period_end=now,
            total_conversions=len(group.conversion_ids),
            total_revenue_generated=group.revenue,
            gross_commission=group.gross,
            deductions=0,
            net_payout_amount=group.gross,
            payout_status="scheduled",
            scheduled_at=now,
            conversion_ids=list(group.conversion_ids),
        )

        claimed = crud_conversion.claim_conversions_for_payout(db, group.leg, group.conversion_ids, payout.id)
        if claimed != len(group.conversion_ids):
            db.rollback()
            logger.warning(
                f"Group {group.key}: claimed {claimed} of {len(group.conversion_ids)} conversions; "
                f"another run got there first. Skipping."
            )
            return None

        db.commit()
        logger.info(
            f"Scheduled {group.leg} payout {payout.id} for {group.leg} {group.payee_id}, event {group.event_id}: "
            f"{group.gross} over {len(group.conversion_ids)} conversions."
        )
        return payout.id


def calculate_pending_payouts_task():
    """Фоновая задача: формирует выплаты по созревшим конверсиям."""
    logger.info("--- Starting scheduled job: Calculate Pending Payouts ---")
    try:
        created = PayoutScheduler(SessionLocal).run()
        logger.info(f"Created {len(created)} payouts.")
    except Exception:
        logger.error("An error occurred during payout calculation task", exc_info=True)
    logger.info("--- Finished scheduled job: Calculate Pending Payouts ---")
