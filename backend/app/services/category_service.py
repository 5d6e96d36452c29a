import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.category import Category
from app.schemas.category import CategoryResponse
from app.services.cache_service import CATEGORIES_ALL_KEY, CATEGORIES_PATTERN, CATEGORIES_TTL, CacheService
from app.services.notification_service import get_hub
from app.utils.authorization import ensure_exists
from app.utils.errors import DuplicateError

logger = logging.getLogger(__name__)


def category_snapshot(category: Category | None) -> dict | None:
    if category is None:
        return None
    return CategoryResponse.model_validate(category).model_dump(mode="json")


class CategoryService:
    def __init__(self, cache: CacheService):
        self.cache = cache

    async def list_categories(self, db: AsyncSession) -> list[dict]:
        async def load() -> list[dict]:
            rows = await db.scalars(select(Category).order_by(Category.name.asc()))
            return [category_snapshot(c) for c in rows]

        return await self.cache.fetch(CATEGORIES_ALL_KEY, load, ttl=CATEGORIES_TTL)

    async def get_category(self, db: AsyncSession, category_id: int) -> Category:
        category = await db.get(Category, category_id)
        ensure_exists(category, "Category")
        return category

    async def create_category(self, db: AsyncSession, name: str, color: str | None = None) -> dict:
        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        category = Category(
            name=name,
            color=color or settings.default_category_color,
            created_at=now,
            updated_at=now,
        )
        db.add(category)
        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            raise DuplicateError("Category with this name already exists", code="DUPLICATE_CATEGORY") from exc
        await db.refresh(category)
        snapshot = category_snapshot(category)
        logger.info("Created category %s (%s)", category.id, category.name)

        await self.cache.delete_pattern(CATEGORIES_PATTERN)

        # Categories are shared, so every connected session hears about it.
        await get_hub().publish_global(
            "category:created",
            {"categoryId": category.id, "name": category.name, "color": category.color},
        )
        return snapshot
