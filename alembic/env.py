# alembic/env.py

import sys
from os.path import abspath, dirname
# Корень проекта в sys.path, чтобы импортировать пакет app
sys.path.insert(0, abspath(dirname(dirname(__file__))))

from logging.config import fileConfig
from sqlalchemy import engine_from_config
from sqlalchemy.pool import NullPool
from alembic import context

from app.core.config import settings
from app.db.session import Base
# Модели импортируются ради регистрации таблиц в Base.metadata
from app.models import (  # noqa: F401
    User, Event, Ticket, Affiliate, MarketingAgency, ReferralLink, ReferralClick,
    EventCommissionConfig, ReferralConversion, AffiliatePayout, AffiliatePerformanceCache,
)

target_metadata = Base.metadata
alembic_config = context.config

if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name)

# Адрес базы всегда берется из настроек приложения, alembic.ini его не задает
DATABASE_URL = settings.DATABASE_URL
IS_SQLITE = DATABASE_URL.startswith("sqlite")


def run_migrations_offline() -> None:
    """Генерирует SQL без подключения к базе."""
    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=IS_SQLITE,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = engine_from_config({"sqlalchemy.url": DATABASE_URL}, prefix="sqlalchemy.", poolclass=NullPool)
    with engine.connect() as connection:
        # SQLite не умеет ALTER для ограничений, поэтому миграции идут пакетами
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=IS_SQLITE,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
