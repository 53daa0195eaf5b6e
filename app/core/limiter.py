# app/core/limiter.py

import logging
from typing import Optional

from fastapi import Request
from limits import parse
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

logger = logging.getLogger(__name__)

LOOPBACK_ADDRESSES = {"127.0.0.1", "::1", "::ffff:127.0.0.1"}

# --- Функция-ключ для идентификации запросов ---

def key_func(request: Request) -> str:
    """
    Определяет, как идентифицировать запрос для применения лимита.
    Приоритет: ID пользователя (если авторизован) -> IP-адрес.
    """
    user = getattr(request.state, "user", None)
    if user is not None and getattr(user, "id", None):
        return f"user:{user.id}"
    return get_remote_address(request)

# --- Лимитер для HTTP-эндпоинтов ---
# 'moving-window' - гибкий и точный алгоритм, хранилище берем из настроек
# (в проде это Redis, локально - память процесса).
limiter = Limiter(
    key_func=key_func,
    strategy="moving-window",
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
)


# --- Лимитер записи кликов по реферальным ссылкам ---

class ClickRateLimiter:
    """
    Ограничивает число записываемых кликов с одного IP.
    Работает отдельно от бизнес-дедупликации: защищает от скриптовой накрутки.
    Вне продакшена лимит мягче, а локальные адреса не ограничиваются вовсе.
    """

    def __init__(self, rate: str, storage_uri: str, exempt_loopback: bool = False):
        self.rate = rate
        self.exempt_loopback = exempt_loopback
        self._item = parse(rate)
        self._strategy = MovingWindowRateLimiter(storage_from_string(storage_uri))

    def hit(self, client_ip: Optional[str]) -> bool:
        """Регистрирует попытку. Возвращает False, если лимит для IP исчерпан."""
        ip = client_ip or "unknown"
        if self.exempt_loopback and ip in LOOPBACK_ADDRESSES:
            return True
        allowed = self._strategy.hit(self._item, "referral_click", ip)
        if not allowed:
            logger.warning(f"Click rate limit {self.rate} exceeded for client {ip}")
        return allowed


def build_click_rate_limiter() -> ClickRateLimiter:
    """Создает лимитер кликов согласно текущему окружению."""
    return ClickRateLimiter(
        rate=settings.CLICK_RATE_LIMIT,
        storage_uri=settings.RATE_LIMIT_STORAGE_URI,
        exempt_loopback=not settings.IS_PRODUCTION,
    )
