from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from pathlib import Path

import anyio
from alembic import command
from alembic.config import Config
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import get_settings

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent

settings = get_settings()
engine = create_async_engine(settings.database_url, echo=settings.sql_echo, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


def alembic_config() -> Config:
    """Alembic config pointing at the bundled migrations and the migration URL."""
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", settings.direct_database_url or settings.database_url)
    # The application has already configured logging.
    config.attributes["configure_logger"] = False
    return config


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding one session per request."""
    async with SessionLocal() as session:
        yield session


async def init_db() -> None:
    """Bring the schema up to the latest revision when AUTO_RUN_MIGRATIONS is on."""
    if not settings.auto_run_migrations:
        logger.info("AUTO_RUN_MIGRATIONS disabled; skipping Alembic upgrade on startup.")
        return
    logger.info("Upgrading database schema to head")
    await anyio.to_thread.run_sync(command.upgrade, alembic_config(), "head")


async def dispose_engine() -> None:
    await engine.dispose()
