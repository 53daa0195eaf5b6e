# app/main.py

import logging
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# Конфигурация и ядро
from app.core.config import settings as config
from app.core.cookie_codec import build_cookie_codec
from app.core.limiter import build_click_rate_limiter, limiter
from app.core.logging_config import setup_logging
from app.core.redis import redis_client
from app.db.session import SessionLocal

# Роутеры FastAPI
from app.routers import commission_config, internal, payouts, performance, referral_links, tasks

# Трекинг и фоновые задачи
from app.middleware.referral_tracking import ReferralTrackingMiddleware
from app.services.click_tracker import ClickTracker
from app.services.conversion import ConversionRecorder
from app.services.payout_scheduler import calculate_pending_payouts_task
from app.services.performance_cache import refresh_performance_cache_task

# --- Инициализация ---
logger = logging.getLogger(__name__)
scheduler = AsyncIOScheduler(timezone=config.SCHEDULER_TIMEZONE)

# --- Обработчик критических ошибок ---
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Глобальный обработчик для всех необработанных исключений.
    """
    logger.critical(f"Unhandled exception for request: {request.method} {request.url}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error."},
    )

# --- Lifespan Manager (запуск и остановка приложения) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Application lifespan startup...")

    # Надежная блокировка через Redis: планировщик запускается только на одном воркере
    is_main_worker = await redis_client.set("app_startup_lock", "1", ex=60, nx=True)

    if is_main_worker:
        logger.info("This is the main worker. Starting scheduler...")
        if not scheduler.running:
            scheduler.add_job(
                calculate_pending_payouts_task, 'interval',
                minutes=config.PAYOUT_JOB_INTERVAL_MINUTES, id="calculate_pending_payouts",
                max_instances=1, coalesce=True,
            )
            scheduler.add_job(
                refresh_performance_cache_task, 'interval',
                minutes=config.PERFORMANCE_JOB_INTERVAL_MINUTES, id="refresh_performance_cache",
                max_instances=1, coalesce=True,
            )
            scheduler.start()
            logger.info("Scheduler started with background jobs.")
    else:
        logger.info("This is a secondary worker. Skipping scheduler setup.")

    yield

    # Код при остановке
    if is_main_worker:
        logger.info("Main worker shutting down...")
        if scheduler.running:
            scheduler.shutdown()
            logger.info("Scheduler shut down.")
        await redis_client.delete("app_startup_lock")
    else:
        logger.info("Secondary worker shutting down.")

# --- Создание FastAPI приложения ---
app = FastAPI(
    title="Affiliate Attribution Service",
    description="Referral tracking, attribution and commission settlement for event ticketing",
    version="0.1.0",
    lifespan=lifespan
)

# --- Сервисы трекинга: создаются один раз и передаются через app.state ---
cookie_codec = build_cookie_codec()
app.state.click_tracker = ClickTracker(
    session_factory=SessionLocal,
    codec=cookie_codec,
    rate_limiter=build_click_rate_limiter(),
    dedupe_minutes=config.CLICK_DEDUPE_MINUTES,
    cookie_days=config.REFERRAL_COOKIE_DAYS,
)
app.state.conversion_recorder = ConversionRecorder(codec=cookie_codec)
app.state.limiter = limiter

origins = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:5173", # для Vite
    config.FRONTEND_URL,
]
app.add_middleware(ReferralTrackingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True, # Нужно для реферальной куки
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Регистрация обработчиков исключений ---
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Подключение роутеров FastAPI ---
api_router = APIRouter(prefix="/api")

api_router.include_router(commission_config.router, tags=["Commission Config"])
api_router.include_router(referral_links.router, tags=["Referral Links"])
api_router.include_router(payouts.router, tags=["Payouts"])
api_router.include_router(performance.router, tags=["Performance"])

# Админские и внутренние эндпоинты
api_router.include_router(tasks.router, prefix="/admin/tasks", tags=["Admin Tasks"])
api_router.include_router(internal.router, prefix="/internal", tags=["Internal"])

# Подключаем главный роутер к приложению
app.include_router(api_router)

# Короткие ссылки (остаются в корне)
app.include_router(referral_links.public_router, tags=["Short Links"])


@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "ok"}
