# app/services/click_tracker.py

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.core.cookie_codec import CookieCodec
from app.core.limiter import ClickRateLimiter
from app.crud import referral as crud_referral
from app.crud import user as crud_user
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

DEFAULT_DEDUPE_MINUTES = 60
DEFAULT_COOKIE_DAYS = 30

BOT_MARKERS = re.compile(r"headless|puppeteer|bot|crawler|spider|httpclient")
SUSPICIOUS_REFERRER_MARKERS = ("://localhost", "://127.0.0.1", "://0.0.0.0")

# --- Причины, по которым клик не был записан ---
REASON_NO_REF = "no_ref"
REASON_LINK_NOT_FOUND = "link_not_found"
REASON_BOT = "bot"
REASON_SUSPICIOUS_REFERRER = "suspicious_referrer"
REASON_RATE_LIMITED = "rate_limited"
REASON_DUPLICATE = "duplicate"
REASON_ERROR = "error"


@dataclass
class ClientInfo:
    device_type: str
    browser: str
    os: str


@dataclass
class TrackingRequest:
    """Все, что трекеру нужно знать о входящем запросе."""
    referral_code: Optional[str]
    client_ip: str
    user_agent: str
    referrer: Optional[str]
    landing_page_url: str
    user_id: Optional[int] = None


@dataclass
class TrackingOutcome:
    """
    Результат трекинга: 'applied' (клик записан) или 'skipped' с причиной.
    Кука выдается и при пропуске записи, если ссылка валидна.
    """
    status: str
    reason: Optional[str] = None
    cookie_value: Optional[str] = None
    link_id: Optional[int] = None
    click_id: Optional[int] = None

    @property
    def applied(self) -> bool:
        return self.status == "applied"

    @classmethod
    def skipped(cls, reason: str, **kwargs) -> "TrackingOutcome":
        return cls(status="skipped", reason=reason, **kwargs)


# --- Классификация клиента ---

def parse_user_agent(user_agent: Optional[str]) -> ClientInfo:
    ua = (user_agent or "").lower()
    is_mobile = bool(re.search(r"mobile|android|iphone|ipad", ua))
    is_tablet = bool(re.search(r"ipad|tablet", ua))
    device_type = "tablet" if is_tablet else "mobile" if is_mobile else "desktop"

    browser = "unknown"
    if "firefox" in ua:
        browser = "firefox"
    elif "edg/" in ua or "edge" in ua:
        browser = "edge"
    elif "chrome" in ua:
        browser = "chrome"
    elif "safari" in ua:
        browser = "safari"

    os_name = "unknown"
    if "windows" in ua:
        os_name = "windows"
    elif "iphone" in ua or "ipad" in ua or "ios" in ua:
        os_name = "ios"
    elif "mac os" in ua or "macintosh" in ua:
        os_name = "macos"
    elif "android" in ua:
        os_name = "android"
    elif "linux" in ua:
        os_name = "linux"

    return ClientInfo(device_type=device_type, browser=browser, os=os_name)


def is_bot(user_agent: Optional[str]) -> bool:
    return bool(BOT_MARKERS.search((user_agent or "").lower()))


def is_suspicious_referrer(referrer: Optional[str]) -> bool:
    """Реферер, указывающий на локальную машину, считаем подозрительным."""
    if not referrer:
        return False
    return any(marker in referrer for marker in SUSPICIOUS_REFERRER_MARKERS)


def visitor_fingerprint(client_ip: str, user_agent: str) -> str:
    """Необратимый отпечаток посетителя: позволяет дедуплицировать, не храня IP."""
    return hashlib.sha256(f"{client_ip}|{user_agent}".encode("utf-8")).hexdigest()[:40]


class ClickTracker:
    """
    Превращает переход по реферальной ссылке в запись клика и зашифрованную куку.

    Все зависимости передаются явно; экземпляр создается один раз при старте приложения.
    Метод `track` никогда не бросает исключений: трекинг не должен ломать основной запрос.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        codec: CookieCodec,
        rate_limiter: ClickRateLimiter,
        dedupe_minutes: int = DEFAULT_DEDUPE_MINUTES,
        cookie_days: int = DEFAULT_COOKIE_DAYS,
        clock: Callable = utcnow,
    ):
        self.session_factory = session_factory
        self.codec = codec
        self.rate_limiter = rate_limiter
        self.dedupe_window = timedelta(minutes=dedupe_minutes)
        self.cookie_lifetime = timedelta(days=cookie_days)
        self.clock = clock

    def track(self, request: TrackingRequest) -> TrackingOutcome:
        if not request.referral_code:
            return TrackingOutcome.skipped(REASON_NO_REF)
        try:
            with self.session_factory() as db:
                return self._track(db, request)
        except Exception:
            logger.error(f"Referral tracking failed for code '{request.referral_code}'", exc_info=True)
            return TrackingOutcome.skipped(REASON_ERROR)

    def _track(self, db: Session, request: TrackingRequest) -> TrackingOutcome:
        now = self.clock()

        link = crud_referral.get_active_link_by_code(db, request.referral_code)
        if link is None or not link.is_trackable(now):
            logger.info(f"Referral code '{request.referral_code}' does not resolve to a trackable link.")
            return TrackingOutcome.skipped(REASON_LINK_NOT_FOUND)

        user_agent = request.user_agent or ""
        visitor_id = visitor_fingerprint(request.client_ip, user_agent)

        skip_reason = None
        click = None
        if is_bot(user_agent):
            skip_reason = REASON_BOT
        elif is_suspicious_referrer(request.referrer):
            skip_reason = REASON_SUSPICIOUS_REFERRER
        elif not self.rate_limiter.hit(request.client_ip):
            skip_reason = REASON_RATE_LIMITED
        elif crud_referral.find_recent_click(db, link.id, visitor_id, now - self.dedupe_window):
            # Проверка и запись не атомарны: при одновременных запросах клик может
            # задвоиться, это допустимо.
            skip_reason = REASON_DUPLICATE
        else:
            client = parse_user_agent(user_agent)
            user_id = request.user_id
            if user_id is not None and crud_user.get_user_by_id(db, user_id) is None:
                user_id = None
            click = crud_referral.create_click(
                db,
                link_id=link.id,
                event_id=link.event_id,
                affiliate_id=link.affiliate_id,
                agency_id=link.agency_id,
                visitor_id=visitor_id,
                user_id=user_id,
                user_agent=user_agent,
                referrer_url=request.referrer,
                landing_page_url=request.landing_page_url,
                country="ZZ",
                device_type=client.device_type,
                browser=client.browser,
                os=client.os,
                clicked_at=now,
            )
            logger.info(f"Recorded click {click.id} on link {link.id} (visitor {visitor_id[:8]}...)")

        cookie_value = self.codec.encode(self.build_cookie_payload(link, click, now))

        if skip_reason:
            logger.info(f"Click on link {link.id} not recorded: {skip_reason}. Cookie refreshed.")
            return TrackingOutcome.skipped(skip_reason, cookie_value=cookie_value, link_id=link.id)
        return TrackingOutcome(status="applied", cookie_value=cookie_value, link_id=link.id, click_id=click.id)

    def build_cookie_payload(self, link, click, now) -> dict:
        issued_at = now.replace(tzinfo=timezone.utc)
        return {
            "ref_code": link.referral_code,
            "affiliate_id": link.affiliate_id,
            "agency_id": link.agency_id,
            "link_id": link.id,
            "click_id": click.id if click is not None else None,
            "clicked_at": issued_at.isoformat(),
            "expires_at": (issued_at + self.cookie_lifetime).isoformat(),
        }
