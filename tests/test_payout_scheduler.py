# tests/test_payout_scheduler.py

from datetime import timedelta

import pytest

from app.models import Affiliate, AffiliatePayout, ReferralConversion
from app.services.payout_scheduler import PayoutScheduler
from app.utils.dates import utcnow

NOW = utcnow()


@pytest.fixture
def scheduler(session_factory):
    return PayoutScheduler(session_factory, clock=lambda: NOW)


@pytest.fixture
def make_conversion(db_session, referral_link, make_click, make_ticket):
    def _make_conversion(age_days=10, affiliate_commission=15.0, tier_2=None, agency_commission=0.0,
                         affiliate_id=None, agency_id=None, status="confirmed"):
        click = make_click(referral_link, clicked_at=NOW - timedelta(days=age_days, hours=1))
        ticket = make_ticket(referral_link.event)
        conversion = ReferralConversion(
            click_id=click.id,
            link_id=referral_link.id,
            event_id=referral_link.event_id,
            ticket_id=ticket.id,
            affiliate_id=affiliate_id or referral_link.affiliate_id,
            agency_id=agency_id,
            attributed_clicks=[],
            ticket_price=100.0,
            platform_fee=5.0,
            organizer_revenue=95.0,
            primary_agency_commission=agency_commission,
            affiliate_commission=affiliate_commission,
            tier_2_affiliate_commission=tier_2,
            organizer_net=95.0 - agency_commission - affiliate_commission - (tier_2 or 0),
            conversion_status=status,
            converted_at=NOW - timedelta(days=age_days),
        )
        db_session.add(conversion)
        db_session.commit()
        db_session.refresh(conversion)
        return conversion
    return _make_conversion


def payouts(db_session):
    db_session.expire_all()
    return db_session.query(AffiliatePayout).all()


def test_group_above_minimum_is_scheduled(db_session, scheduler, commission_config, make_conversion):
    conversion = make_conversion(affiliate_commission=15.0)

    created = scheduler.run()

    assert len(created) == 1
    [payout] = payouts(db_session)
    assert payout.payout_type == "affiliate"
    assert payout.payout_status == "scheduled"
    assert payout.affiliate_id == conversion.affiliate_id
    assert payout.organizer_id == commission_config.organizer_id
    assert payout.gross_commission == 15.0
    assert payout.net_payout_amount == 15.0
    assert payout.conversion_ids == [conversion.id]
    assert payout.payout_period_start == NOW.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    db_session.refresh(conversion)
    assert conversion.affiliate_payout_status == "scheduled"
    assert conversion.affiliate_payout_id == payout.id


def test_group_below_minimum_rolls_forward(db_session, scheduler, commission_config, make_conversion):
    conversion = make_conversion(affiliate_commission=5.0)

    assert scheduler.run() == []
    assert payouts(db_session) == []
    db_session.refresh(conversion)
    assert conversion.affiliate_payout_status == "pending"


def test_small_conversions_accumulate(db_session, scheduler, commission_config, make_conversion):
    make_conversion(affiliate_commission=6.0)
    make_conversion(affiliate_commission=6.0)

    scheduler.run()

    [payout] = payouts(db_session)
    assert payout.total_conversions == 2
    assert payout.gross_commission == 12.0
    assert payout.total_revenue_generated == 200.0


def test_recent_conversions_wait_for_delay(db_session, scheduler, commission_config, make_conversion):
    make_conversion(age_days=3, affiliate_commission=50.0)
    assert scheduler.run() == []


def test_unconfirmed_conversions_are_ignored(db_session, scheduler, commission_config, make_conversion):
    make_conversion(affiliate_commission=50.0, status="refunded")
    assert scheduler.run() == []


def test_tier_2_commission_counts_towards_gross(db_session, scheduler, commission_config, make_conversion):
    make_conversion(affiliate_commission=8.0, tier_2=2.5)
    scheduler.run()
    [payout] = payouts(db_session)
    assert payout.gross_commission == 10.5


def test_agency_leg_is_paid_separately(db_session, scheduler, commission_config, make_conversion, agency):
    conversion = make_conversion(affiliate_commission=15.0, agency_commission=19.0, agency_id=agency.id)

    scheduler.run()

    by_type = {p.payout_type: p for p in payouts(db_session)}
    assert set(by_type) == {"affiliate", "agency"}
    assert by_type["agency"].agency_id == agency.id
    assert by_type["agency"].affiliate_id is None
    assert by_type["agency"].gross_commission == 19.0
    db_session.refresh(conversion)
    assert conversion.agency_payout_status == "scheduled"
    assert conversion.agency_payout_id == by_type["agency"].id
    assert conversion.affiliate_payout_id == by_type["affiliate"].id


def test_zero_commission_is_not_paid_out(db_session, scheduler, commission_config, make_conversion, agency):
    commission_config.affiliate_commission_enabled = False
    commission_config.minimum_payout_amount = 0.0
    db_session.commit()
    conversion = make_conversion(affiliate_commission=0.0, agency_commission=19.0, agency_id=agency.id)

    scheduler.run()

    assert [(p.payout_type, p.gross_commission) for p in payouts(db_session)] == [("agency", 19.0)]
    db_session.refresh(conversion)
    assert conversion.affiliate_payout_status == "pending"
    assert conversion.affiliate_payout_id is None

def test_second_run_does_not_double_claim(db_session, scheduler, commission_config, make_conversion):
    make_conversion(affiliate_commission=15.0)
    assert len(scheduler.run()) == 1
    assert scheduler.run() == []
    assert len(payouts(db_session)) == 1


def test_concurrently_claimed_group_is_skipped(db_session, scheduler, session_factory, commission_config, make_conversion):
    first = make_conversion(affiliate_commission=15.0)
    second = make_conversion(affiliate_commission=15.0)

    with session_factory() as db:
        [group] = scheduler.collect_groups(db, NOW)

    # Другой запуск успел забрать одну из конверсий группы
    first.affiliate_payout_status = "scheduled"
    db_session.commit()

    with session_factory() as db:
        assert scheduler.schedule_group(db, group, NOW) is None

    assert payouts(db_session) == []
    db_session.refresh(second)
    assert second.affiliate_payout_status == "pending"
    assert second.affiliate_payout_id is None


def test_failing_group_does_not_stop_the_run(
    db_session, scheduler, commission_config, make_conversion, referral_link, mocker
):
    other = Affiliate(display_name="Second affiliate")
    db_session.add(other)
    db_session.commit()
    make_conversion(affiliate_commission=15.0)
    make_conversion(affiliate_commission=15.0, affiliate_id=other.id)

    from app.services import payout_scheduler
    real_create = payout_scheduler.crud_payout.create_payout
    failing_affiliate = referral_link.affiliate_id

    def create_payout(db, **fields):
        if fields.get("affiliate_id") == failing_affiliate:
            raise RuntimeError("boom")
        return real_create(db, **fields)

    mocker.patch.object(payout_scheduler.crud_payout, "create_payout", side_effect=create_payout)

    created = scheduler.run()

    assert len(created) == 1
    [payout] = payouts(db_session)
    assert payout.affiliate_id == other.id
