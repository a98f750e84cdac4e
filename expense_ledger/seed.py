"""Backfill the built-in categories for every existing user.

Run with ``expense-ledger-seed-categories`` (or ``python -m expense_ledger.seed``)
after deploying to an existing database. Safe to repeat.
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import get_settings
from .db import SessionLocal, dispose_engine
from .models.user import User
from .services.categories import ensure_default_categories

logger = logging.getLogger(__name__)


async def seed_default_categories(
    session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
) -> int:
    """Return the number of categories created across all users."""
    async with session_factory() as session:
        result = await session.execute(select(User.id).order_by(User.created_at.asc()))
        user_ids = result.scalars().all()
        logger.info("Checking default categories for %d users", len(user_ids))

        total = 0
        for user_id in user_ids:
            created = await ensure_default_categories(session, user_id)
            total += len(created)

    logger.info("Created %d default categories for %d users", total, len(user_ids))
    return total


async def _run() -> int:
    try:
        return await seed_default_categories()
    finally:
        await dispose_engine()


def main() -> None:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    asyncio.run(_run())


if __name__ == "__main__":
    main()
