# app/core/logging_config.py

import logging
from logging.config import dictConfig

from app.core.config import settings

# Модули, которые работают на горячем пути запроса и по умолчанию пишут только предупреждения
QUIET_MODULES = ("app.services.click_tracker", "app.middleware.referral_tracking")


def build_logging_config(level: str = "INFO") -> dict:
    level = level.upper()
    quiet_level = max(logging.getLevelName(level), logging.WARNING)

    loggers = {
        "uvicorn": {"handlers": ["console"], "level": level},
        "apscheduler": {"handlers": ["jobs"], "level": "WARNING", "propagate": False},
        "app": {"handlers": ["console"], "level": level, "propagate": False},
        # Фоновые задачи пишут в отдельном формате, чтобы их было видно среди запросов
        "app.services.payout_scheduler": {"handlers": ["jobs"], "level": level, "propagate": False},
        "app.services.performance_cache": {"handlers": ["jobs"], "level": level, "propagate": False},
    }
    for name in QUIET_MODULES:
        loggers[name] = {"handlers": ["console"], "level": logging.getLevelName(quiet_level), "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "job": {
                "format": "%(asctime)s [job] %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "default", "stream": "ext://sys.stdout"},
            "jobs": {"class": "logging.StreamHandler", "formatter": "job", "stream": "ext://sys.stdout"},
        },
        "loggers": loggers,
        "root": {"level": level, "handlers": ["console"]},
    }


def setup_logging():
    """Применяет конфигурацию логирования с уровнем из настроек."""
    dictConfig(build_logging_config(settings.LOG_LEVEL))
