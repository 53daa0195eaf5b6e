# tests/conftest.py
import os

# Настройки читаются при импорте приложения, поэтому задаем их до любых импортов из app
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.cookie_codec import CookieCodec
from app.core.limiter import ClickRateLimiter
from app.db.session import Base
from app.dependencies import get_db
from app.main import app
from app.models import (
    Affiliate, Event, EventCommissionConfig, MarketingAgency, ReferralClick, ReferralLink, Ticket, User,
)
from app.services.click_tracker import ClickTracker
from app.services.conversion import ConversionRecorder
from app.utils.dates import utcnow

# Используем in-memory SQLite для тестов - это быстро и изолированно.
# StaticPool: все сессии работают через одно соединение, иначе каждая видела бы пустую базу.
SQLALCHEMY_DATABASE_URL = "sqlite://"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_COOKIE_KEY = bytes(range(32))


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Фикстура для создания чистой базы данных для каждого теста.
    """
    Base.metadata.create_all(bind=engine) # Создаем все таблицы
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine) # Очищаем все после теста


@pytest.fixture
def session_factory(db_session):
    """Фабрика сессий для сервисов, которые открывают собственные сессии."""
    return TestingSessionLocal


@pytest.fixture
def codec() -> CookieCodec:
    return CookieCodec(TEST_COOKIE_KEY)


@pytest.fixture
def click_tracker(session_factory, codec) -> ClickTracker:
    return ClickTracker(
        session_factory=session_factory,
        codec=codec,
        rate_limiter=ClickRateLimiter("1000/hour", "memory://"),
    )


# --- Тестовые данные ---

@pytest.fixture
def organizer(db_session) -> User:
    user = User(email="organizer@example.com", full_name="Olga Organizer", role="organizer")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def other_organizer(db_session) -> User:
    user = User(email="other@example.com", full_name="Oleg Other", role="organizer")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def admin(db_session) -> User:
    user = User(email="admin@example.com", full_name="Anna Admin", role="admin")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def event(db_session, organizer) -> Event:
    event = Event(organizer_id=organizer.id, title="Summer Fest", slug="summer-fest", status="published")
    db_session.add(event)
    db_session.commit()
    db_session.refresh(event)
    return event


@pytest.fixture
def agency(db_session, organizer) -> MarketingAgency:
    agency_user = User(email="agency@example.com", full_name="Agency Owner", role="agency")
    db_session.add(agency_user)
    db_session.flush()
    agency = MarketingAgency(organizer_id=organizer.id, user_id=agency_user.id, agency_name="Loud Promo")
    db_session.add(agency)
    db_session.commit()
    db_session.refresh(agency)
    return agency


@pytest.fixture
def affiliate_user(db_session) -> User:
    user = User(email="affiliate@example.com", full_name="Artem Affiliate", role="affiliate")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def affiliate(db_session, affiliate_user) -> Affiliate:
    affiliate = Affiliate(user_id=affiliate_user.id, display_name="Artem")
    db_session.add(affiliate)
    db_session.commit()
    db_session.refresh(affiliate)
    return affiliate


@pytest.fixture
def commission_config(db_session, event) -> EventCommissionConfig:
    """5% платформе, 10% партнеру от выручки организатора, без агентства."""
    config = EventCommissionConfig(
        event_id=event.id,
        organizer_id=event.organizer_id,
        platform_fee_type="percentage",
        platform_fee_percentage=5.0,
        affiliate_commission_rate=10.0,
        affiliate_commission_base="organizer_revenue",
        attribution_model="last_click",
        attribution_window_days=30,
        payout_delay_days=7,
        minimum_payout_amount=10.0,
    )
    db_session.add(config)
    db_session.commit()
    db_session.refresh(config)
    return config


@pytest.fixture
def referral_link(db_session, event, affiliate) -> ReferralLink:
    link = ReferralLink(event_id=event.id, affiliate_id=affiliate.id, referral_code="RL-TEST0001")
    db_session.add(link)
    db_session.commit()
    db_session.refresh(link)
    return link


@pytest.fixture
def make_click(db_session):
    def _make_click(link: ReferralLink, clicked_at=None, visitor_id="visitor-1", device_type="desktop") -> ReferralClick:
        click = ReferralClick(
            link_id=link.id,
            event_id=link.event_id,
            affiliate_id=link.affiliate_id,
            agency_id=link.agency_id,
            visitor_id=visitor_id,
            landing_page_url="https://example.com/events/summer-fest?ref=" + link.referral_code,
            device_type=device_type,
            clicked_at=clicked_at or utcnow() - timedelta(hours=1),
        )
        db_session.add(click)
        db_session.commit()
        db_session.refresh(click)
        return click
    return _make_click


@pytest.fixture
def make_ticket(db_session):
    def _make_ticket(event: Event, price: float = 100.0, owner_user_id=None) -> Ticket:
        ticket = Ticket(event_id=event.id, price=price, owner_user_id=owner_user_id, holder_email="buyer@example.com")
        db_session.add(ticket)
        db_session.commit()
        db_session.refresh(ticket)
        return ticket
    return _make_ticket


@pytest.fixture
def cookie_for(codec):
    """Кука, которую трекер выдал бы посетителю ссылки."""
    def _cookie_for(link: ReferralLink, click_id=None) -> str:
        now = utcnow()
        return codec.encode({
            "ref_code": link.referral_code,
            "affiliate_id": link.affiliate_id,
            "agency_id": link.agency_id,
            "link_id": link.id,
            "click_id": click_id,
            "clicked_at": now.isoformat() + "+00:00",
            "expires_at": (now + timedelta(days=30)).isoformat() + "+00:00",
        })
    return _cookie_for


# --- HTTP-клиент и авторизация ---

def auth_headers_for(user: User) -> dict:
    token = jwt.encode({"sub": str(user.id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_auth_headers():
    return auth_headers_for


@pytest.fixture
def organizer_auth_headers(organizer) -> dict:
    return auth_headers_for(organizer)


@pytest.fixture
def affiliate_auth_headers(affiliate, affiliate_user) -> dict:
    return auth_headers_for(affiliate_user)


@pytest.fixture
def admin_auth_headers(admin) -> dict:
    return auth_headers_for(admin)


@pytest_asyncio.fixture
async def client(db_session, click_tracker, codec):
    """HTTP-клиент к приложению с тестовой БД и тестовыми сервисами трекинга."""
    def override_get_db():
        yield db_session

    original_tracker = app.state.click_tracker
    original_recorder = app.state.conversion_recorder
    app.dependency_overrides[get_db] = override_get_db
    app.state.click_tracker = click_tracker
    app.state.conversion_recorder = ConversionRecorder(codec)
    app.state.limiter.reset()
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
        app.state.click_tracker = original_tracker
        app.state.conversion_recorder = original_recorder
