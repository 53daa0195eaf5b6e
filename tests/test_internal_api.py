# tests/test_internal_api.py

import pytest
from httpx import AsyncClient

from app.core.config import settings
from app.models import ReferralConversion

pytestmark = pytest.mark.asyncio

SECRET_HEADERS = {"X-Internal-Secret": settings.INTERNAL_WEBHOOK_SECRET}


async def test_conversion_recorded_from_cookie(
    client: AsyncClient, db_session, commission_config, referral_link, make_click, make_ticket, cookie_for
):
    click = make_click(referral_link)
    ticket = make_ticket(referral_link.event)

    response = await client.post(
        f"/api/internal/tickets/{ticket.id}/conversion",
        headers={**SECRET_HEADERS, "Cookie": f"{settings.REFERRAL_COOKIE_NAME}={cookie_for(referral_link, click.id)}"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["recorded"] is True
    assert data["conversion"]["ticket_id"] == ticket.id
    assert data["conversion"]["affiliate_commission"] == 9.5
    assert db_session.query(ReferralConversion).count() == 1


async def test_no_cookie_is_not_an_error(client: AsyncClient, db_session, commission_config, event, make_ticket):
    ticket = make_ticket(event)
    response = await client.post(f"/api/internal/tickets/{ticket.id}/conversion", headers=SECRET_HEADERS)
    assert response.status_code == 200
    assert response.json() == {"recorded": False, "conversion": None}


async def test_wrong_secret(client: AsyncClient, db_session, event, make_ticket):
    ticket = make_ticket(event)
    response = await client.post(
        f"/api/internal/tickets/{ticket.id}/conversion", headers={"X-Internal-Secret": "guess"}
    )
    assert response.status_code == 403


async def test_missing_secret(client: AsyncClient, db_session):
    response = await client.post("/api/internal/tickets/1/conversion")
    assert response.status_code == 422


async def test_unknown_ticket(client: AsyncClient, db_session):
    response = await client.post("/api/internal/tickets/999/conversion", headers=SECRET_HEADERS)
    assert response.status_code == 404
