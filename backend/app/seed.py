"""Insert the default categories. Run with ``python -m app.seed``."""
import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import SessionLocal, close_engine, init_db
from app.models.category import Category
from app.services.cache_service import CATEGORIES_ALL_KEY, CacheService, cache_service
from app.utils.logging import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("Documents", "#3B82F6"),
    ("Images", "#10B981"),
    ("Reports", "#F59E0B"),
    ("Contracts", "#EF4444"),
    ("Invoices", "#8B5CF6"),
    ("Presentations", "#EC4899"),
    ("Spreadsheets", "#14B8A6"),
    ("Other", "#6B7280"),
]


async def seed_categories(db: AsyncSession, cache: CacheService) -> list[str]:
    existing = set(await db.scalars(select(Category.name)))
    now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    created = []
    for name, color in DEFAULT_CATEGORIES:
        if name in existing:
            logger.info("Category already exists: %s", name)
            continue
        db.add(Category(name=name, color=color, created_at=now, updated_at=now))
        created.append(name)
    await db.commit()
    for name in created:
        logger.info("Created category: %s", name)

    await cache.delete(CATEGORIES_ALL_KEY)
    return created


async def main() -> None:
    setup_logging()
    await init_db()
    try:
        async with SessionLocal() as db:
            await seed_categories(db, cache_service)
    finally:
        await cache_service.close()
        await close_engine()


if __name__ == "__main__":
    asyncio.run(main())
