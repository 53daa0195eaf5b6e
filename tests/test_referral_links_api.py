# tests/test_referral_links_api.py

from urllib.parse import parse_qs, urlparse

import pytest
from httpx import AsyncClient

from app.crud import referral as crud_referral
from app.models import ReferralLink
from app.services import referral_links as referral_links_service

pytestmark = pytest.mark.asyncio


async def test_affiliate_creates_link_on_self(client: AsyncClient, event, affiliate, affiliate_auth_headers):
    response = await client.post(
        f"/api/events/{event.id}/referral-links",
        json={"campaign_name": "Instagram", "utm_source": "instagram"},
        headers=affiliate_auth_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["affiliate_id"] == affiliate.id
    assert data["agency_id"] is None
    assert data["referral_code"].startswith("RL-")
    assert len(data["referral_code"]) == 11
    assert data["status"] == "active"
    assert data["current_uses"] == 0


async def test_custom_code_must_be_unique(client: AsyncClient, event, referral_link, affiliate_auth_headers):
    response = await client.post(
        f"/api/events/{event.id}/referral-links",
        json={"referral_code": referral_link.referral_code},
        headers=affiliate_auth_headers,
    )
    assert response.status_code == 409


async def test_invalid_custom_code(client: AsyncClient, event, affiliate_auth_headers):
    response = await client.post(
        f"/api/events/{event.id}/referral-links", json={"referral_code": "no spaces!"}, headers=affiliate_auth_headers
    )
    assert response.status_code == 422


@pytest.mark.parametrize("payee", [{}, "both"])
async def test_organizer_names_exactly_one_payee(client: AsyncClient, event, affiliate, agency, organizer_auth_headers, payee):
    if payee == "both":
        payee = {"affiliate_id": affiliate.id, "agency_id": agency.id}
    response = await client.post(f"/api/events/{event.id}/referral-links", json=payee, headers=organizer_auth_headers)
    assert response.status_code == 400


async def test_organizer_creates_agency_link(client: AsyncClient, event, agency, organizer_auth_headers):
    response = await client.post(
        f"/api/events/{event.id}/referral-links", json={"agency_id": agency.id}, headers=organizer_auth_headers
    )
    assert response.status_code == 201
    assert response.json()["agency_id"] == agency.id
    assert response.json()["affiliate_id"] is None


async def test_links_only_for_published_events(client: AsyncClient, db_session, event, affiliate_auth_headers):
    event.status = "draft"
    db_session.commit()
    response = await client.post(f"/api/events/{event.id}/referral-links", json={}, headers=affiliate_auth_headers)
    assert response.status_code == 400


async def test_list_links(client: AsyncClient, event, referral_link, affiliate_auth_headers, organizer_auth_headers):
    mine = await client.get("/api/affiliates/referral-links", headers=affiliate_auth_headers)
    assert [link["id"] for link in mine.json()] == [referral_link.id]

    for_event = await client.get(f"/api/events/{event.id}/referral-links", headers=organizer_auth_headers)
    assert [link["id"] for link in for_event.json()] == [referral_link.id]


async def test_preview_url_carries_ref_and_utm(client: AsyncClient, db_session, referral_link, affiliate_auth_headers):
    referral_link.utm_source = "newsletter"
    db_session.commit()

    response = await client.get(f"/api/referral-links/{referral_link.id}/preview", headers=affiliate_auth_headers)

    assert response.status_code == 200
    url = urlparse(response.json()["url"])
    assert url.path == "/events/summer-fest"
    assert parse_qs(url.query) == {"ref": ["RL-TEST0001"], "utm_source": ["newsletter"]}
    assert response.json()["short_url"] is None


async def test_update_link(client: AsyncClient, referral_link, affiliate_auth_headers):
    response = await client.patch(
        f"/api/referral-links/{referral_link.id}",
        json={"status": "paused", "max_uses": 50},
        headers=affiliate_auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "paused"
    assert response.json()["max_uses"] == 50


async def test_strangers_cannot_manage_link(client: AsyncClient, referral_link, other_organizer, make_auth_headers):
    response = await client.patch(
        f"/api/referral-links/{referral_link.id}", json={"status": "paused"}, headers=make_auth_headers(other_organizer)
    )
    assert response.status_code == 403


async def test_soft_delete(client: AsyncClient, db_session, referral_link, affiliate_auth_headers):
    response = await client.delete(f"/api/referral-links/{referral_link.id}", headers=affiliate_auth_headers)
    assert response.status_code == 204

    db_session.expire_all()
    stored = db_session.get(ReferralLink, referral_link.id)
    assert stored is not None
    assert stored.deleted_at is not None
    assert stored.status == "paused"

    mine = await client.get("/api/affiliates/referral-links", headers=affiliate_auth_headers)
    assert mine.json() == []
    response = await client.get(f"/api/referral-links/{referral_link.id}/preview", headers=affiliate_auth_headers)
    assert response.status_code == 404


async def test_shorten_is_idempotent_and_redirects(client: AsyncClient, referral_link, affiliate_auth_headers):
    first = await client.post(f"/api/referral-links/{referral_link.id}/shorten", headers=affiliate_auth_headers)
    second = await client.post(f"/api/referral-links/{referral_link.id}/shorten", headers=affiliate_auth_headers)

    assert first.status_code == 200
    short_code = first.json()["short_code"]
    assert len(short_code) == 6
    assert short_code.isalnum()
    assert second.json()["short_code"] == short_code
    assert first.json()["short_url"].endswith(f"/r/{short_code}")

    redirect = await client.get(f"/r/{short_code}")
    assert redirect.status_code == 302
    assert "ref=RL-TEST0001" in redirect.headers["location"]


async def test_shorten_gives_up_after_collisions(client: AsyncClient, mocker, referral_link, affiliate_auth_headers):
    mocker.patch.object(crud_referral, "short_code_exists", return_value=True)
    response = await client.post(f"/api/referral-links/{referral_link.id}/shorten", headers=affiliate_auth_headers)
    assert response.status_code == 500


async def test_shorten_retries_when_code_is_taken_on_commit(
    client: AsyncClient, mocker, db_session, event, affiliate, referral_link, affiliate_auth_headers
):
    db_session.add(ReferralLink(event_id=event.id, affiliate_id=affiliate.id, referral_code="RL-OTHER001", short_code="Taken1"))
    db_session.commit()
    # Проверка свободы кода проходит, но запись упирается в уникальный индекс
    mocker.patch.object(crud_referral, "short_code_exists", return_value=False)
    mocker.patch.object(referral_links_service, "generate_short_code", side_effect=["Taken1", "Fresh1"])

    response = await client.post(f"/api/referral-links/{referral_link.id}/shorten", headers=affiliate_auth_headers)

    assert response.status_code == 200
    assert response.json()["short_code"] == "Fresh1"
    db_session.expire_all()
    assert db_session.get(ReferralLink, referral_link.id).short_code == "Fresh1"

async def test_unknown_short_code(client: AsyncClient, db_session):
    response = await client.get("/r/nope42")
    assert response.status_code == 404
