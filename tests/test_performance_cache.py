# tests/test_performance_cache.py

from datetime import datetime, timedelta

import pytest

from app.models import AffiliatePerformanceCache, ReferralConversion
from app.services.performance_cache import conversion_rate, period_bounds, refresh_performance_cache


def test_period_bounds():
    now = datetime(2026, 5, 14, 15, 30)  # четверг
    assert period_bounds("today", now) == (datetime(2026, 5, 14), now)
    assert period_bounds("week", now) == (datetime(2026, 5, 11), now)
    assert period_bounds("month", now) == (datetime(2026, 5, 1), now)
    assert period_bounds("quarter", now) == (datetime(2026, 4, 1), now)
    assert period_bounds("year", now) == (datetime(2026, 1, 1), now)
    assert period_bounds("all_time", now)[0] == datetime(1970, 1, 1)
    with pytest.raises(ValueError):
        period_bounds("fortnight", now)


def test_conversion_rate():
    assert conversion_rate(1, 3) == 33.33
    assert conversion_rate(0, 0) == 0.0
    assert conversion_rate(5, 0) == 0.0


@pytest.fixture
def activity(db_session, referral_link, make_click, make_ticket):
    """Четыре клика трех посетителей и одна подтвержденная конверсия за сегодня."""
    now = datetime(2026, 5, 14, 12, 0)
    clicks = [
        make_click(referral_link, clicked_at=now - timedelta(minutes=30), visitor_id="a", device_type="desktop"),
        make_click(referral_link, clicked_at=now - timedelta(minutes=20), visitor_id="a", device_type="desktop"),
        make_click(referral_link, clicked_at=now - timedelta(minutes=10), visitor_id="b", device_type="mobile"),
        make_click(referral_link, clicked_at=now - timedelta(minutes=5), visitor_id="c", device_type="tablet"),
    ]
    for status in ("confirmed", "refunded"):
        db_session.add(ReferralConversion(
            click_id=clicks[0].id, link_id=referral_link.id, event_id=referral_link.event_id,
            ticket_id=make_ticket(referral_link.event).id, affiliate_id=referral_link.affiliate_id,
            attributed_clicks=[], ticket_price=100.0, platform_fee=5.0, organizer_revenue=95.0,
            affiliate_commission=9.5, organizer_net=85.5, conversion_status=status,
            converted_at=now - timedelta(minutes=1),
        ))
    db_session.commit()
    return now


def cache_rows(db_session):
    db_session.expire_all()
    return db_session.query(AffiliatePerformanceCache).all()


def test_refresh_builds_rollup(db_session, session_factory, affiliate, activity):
    refreshed = refresh_performance_cache(now=activity, session_factory=session_factory)

    assert refreshed == {"today": 1}
    [row] = cache_rows(db_session)
    assert row.affiliate_id == affiliate.id
    assert row.time_period == "today"
    assert row.total_clicks == 4
    assert row.unique_visitors == 3
    assert (row.desktop_clicks, row.mobile_clicks, row.tablet_clicks) == (2, 1, 1)
    assert row.total_conversions == 1
    assert row.conversion_rate == 33.33
    assert row.total_revenue_generated == 95.0
    assert row.total_commission_earned == 9.5


def test_refresh_is_an_upsert(db_session, session_factory, affiliate, activity):
    refresh_performance_cache(now=activity, session_factory=session_factory)
    refresh_performance_cache(now=activity, session_factory=session_factory)
    assert len(cache_rows(db_session)) == 1


def test_refresh_several_periods(db_session, session_factory, affiliate, activity):
    refresh_performance_cache(("today", "month", "all_time"), now=activity, session_factory=session_factory)
    assert sorted(row.time_period for row in cache_rows(db_session)) == ["all_time", "month", "today"]


def test_stale_rows_are_reset(db_session, session_factory, affiliate, activity):
    refresh_performance_cache(now=activity, session_factory=session_factory)
    # Следующий день: активности еще нет
    refresh_performance_cache(now=activity + timedelta(days=1), session_factory=session_factory)
    [row] = cache_rows(db_session)
    assert row.total_clicks == 0
    assert row.conversion_rate == 0.0


def test_cache_can_be_rebuilt_from_scratch(db_session, session_factory, affiliate, activity):
    refresh_performance_cache(now=activity, session_factory=session_factory)
    before = cache_rows(db_session)[0].total_clicks
    db_session.query(AffiliatePerformanceCache).delete()
    db_session.commit()

    refresh_performance_cache(now=activity, session_factory=session_factory)
    assert cache_rows(db_session)[0].total_clicks == before


@pytest.mark.asyncio
async def test_affiliate_reads_own_rollup(client, session_factory, affiliate, affiliate_auth_headers, activity):
    refresh_performance_cache(("today", "all_time"), now=activity, session_factory=session_factory)

    response = await client.get("/api/affiliates/performance", headers=affiliate_auth_headers)

    assert response.status_code == 200
    rows = {row["time_period"]: row for row in response.json()}
    assert set(rows) == {"today", "all_time"}
    assert rows["today"]["total_clicks"] == 4
    assert rows["today"]["affiliate_id"] == affiliate.id


@pytest.mark.asyncio
async def test_performance_requires_affiliate_role(client, organizer_auth_headers):
    response = await client.get("/api/affiliates/performance", headers=organizer_auth_headers)
    assert response.status_code == 403
