# app/middleware/referral_tracking.py

import logging
from typing import Optional

from jose import JWTError
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.config import settings
from app.dependencies import user_id_from_token
from app.services.click_tracker import ClickTracker, TrackingRequest

logger = logging.getLogger(__name__)

REFERRAL_QUERY_PARAM = "ref"


def get_client_ip(request: Request) -> str:
    """IP клиента: первый адрес из X-Forwarded-For, иначе адрес сокета."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else ""


def get_token_user_id(request: Request) -> Optional[int]:
    """
    ID пользователя из Bearer-токена. Middleware работает до зависимостей,
    поэтому токен разбирается здесь же; невалидный токен означает анонимного посетителя.
    """
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    try:
        return user_id_from_token(token)
    except (JWTError, ValueError):
        return None


def build_tracking_request(request: Request, referral_code: str) -> TrackingRequest:
    return TrackingRequest(
        referral_code=referral_code,
        client_ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
        referrer=request.headers.get("referer") or request.headers.get("referrer"),
        landing_page_url=str(request.url),
        user_id=get_token_user_id(request),
    )


def set_referral_cookie(response: Response, value: str):
    response.set_cookie(
        key=settings.REFERRAL_COOKIE_NAME,
        value=value,
        max_age=settings.REFERRAL_COOKIE_DAYS * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.IS_PRODUCTION,
        domain=settings.COOKIE_DOMAIN or None,
    )


class ReferralTrackingMiddleware(BaseHTTPMiddleware):
    """
    Перехватывает любой запрос с `?ref=<код>` до маршрутизации.

    Трекер берется из `app.state.click_tracker`. Что бы ни случилось при трекинге,
    запрос передается дальше без изменений, а кука добавляется к ответу, если она есть.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        outcome = None
        referral_code = request.query_params.get(REFERRAL_QUERY_PARAM)
        if referral_code:
            try:
                tracker: ClickTracker = request.app.state.click_tracker
                outcome = await run_in_threadpool(tracker.track, build_tracking_request(request, referral_code))
                logger.debug(f"Referral tracking outcome: {outcome.status} ({outcome.reason})")
            except Exception:
                logger.error("Referral tracking middleware failed; continuing request", exc_info=True)
                outcome = None

        response = await call_next(request)

        if outcome is not None and outcome.cookie_value:
            try:
                set_referral_cookie(response, outcome.cookie_value)
            except Exception:
                logger.error("Failed to attach referral cookie", exc_info=True)
        return response
