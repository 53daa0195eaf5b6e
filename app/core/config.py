# app/core/config.py

import base64
import hashlib
import logging
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Режим работы: 'production' ужесточает куки и лимиты
    ENVIRONMENT: str = "development"

    # Настройки базы данных
    DATABASE_USER: str = "referrals"
    DATABASE_PASSWORD: str = "referrals"
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: int = 5432
    DATABASE_NAME: str = "referrals"
    # Полный URL имеет приоритет над отдельными частями (например, sqlite для локальной отладки)
    DATABASE_URL_OVERRIDE: Optional[str] = None

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379

    # Настройки JWT токенов
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"

    # Общий секрет для внутренних вызовов от сервиса продажи билетов
    INTERNAL_WEBHOOK_SECRET: str = "dev-internal-secret"

    # Ключ шифрования реферальной куки: base64 от 32 байт
    REFERRAL_COOKIE_KEY: str = ""
    REFERRAL_COOKIE_NAME: str = "_event_i_ref"
    REFERRAL_COOKIE_DAYS: int = 30
    COOKIE_DOMAIN: Optional[str] = None

    FRONTEND_URL: str = "http://localhost:3000"
    SHORT_LINK_BASE_URL: str = "http://localhost:8000/r"

    # Трекинг кликов
    CLICK_DEDUPE_MINUTES: int = 60
    CLICK_RATE_LIMIT_PROD: str = "100/hour"
    CLICK_RATE_LIMIT_DEV: str = "1000/hour"
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # Значения по умолчанию для новых конфигураций комиссий
    DEFAULT_PLATFORM_FEE_PERCENTAGE: float = 5.0
    DEFAULT_ATTRIBUTION_WINDOW_DAYS: int = 30
    DEFAULT_PAYOUT_DELAY_DAYS: int = 7
    DEFAULT_MINIMUM_PAYOUT_AMOUNT: float = 50.0

    # Периодичность фоновых задач (в минутах)
    PAYOUT_JOB_INTERVAL_MINUTES: int = 60
    PERFORMANCE_JOB_INTERVAL_MINUTES: int = 15
    SCHEDULER_TIMEZONE: str = Field(default="UTC")

    # Уровень логов приложения; трекинг кликов пишет на уровень выше, он вызывается на каждом запросе
    LOG_LEVEL: str = "INFO"

    @property
    def IS_PRODUCTION(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def CLICK_RATE_LIMIT(self) -> str:
        return self.CLICK_RATE_LIMIT_PROD if self.IS_PRODUCTION else self.CLICK_RATE_LIMIT_DEV

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}"

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql+psycopg2://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"

    @property
    def COOKIE_KEY_BYTES(self) -> bytes:
        """
        256-битный ключ для шифрования реферальной куки.
        Если REFERRAL_COOKIE_KEY не задан или невалиден, ключ выводится из SECRET_KEY.
        Такой запасной ключ годится только для разработки и тестов.
        """
        if self.REFERRAL_COOKIE_KEY:
            try:
                key = base64.b64decode(self.REFERRAL_COOKIE_KEY, validate=True)
                if len(key) == 32:
                    return key
            except ValueError:
                pass
            logger.warning("REFERRAL_COOKIE_KEY is not a base64-encoded 32-byte key. Falling back to derived key.")
        else:
            logger.warning("REFERRAL_COOKIE_KEY is not set. Falling back to a key derived from SECRET_KEY.")
        if self.IS_PRODUCTION:
            raise RuntimeError("REFERRAL_COOKIE_KEY must be set to a base64-encoded 32-byte key in production.")
        return hashlib.sha256(self.SECRET_KEY.encode("utf-8")).digest()

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
