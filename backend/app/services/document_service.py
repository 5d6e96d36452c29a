"""Document lifecycle: relational row, cached snapshot, S3 payload and
owner notifications.

The database is the source of truth. S3 failures on the write path are
terminal; cache and notification side effects are best-effort and never
undo a committed write.
"""
import logging
import math
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.models.category import Category
from app.models.document import Document
from app.schemas.document import DocumentResponse, DocumentUpdate
from app.services.cache_service import (
    DOCUMENT_TTL,
    USER_DOCS_TTL,
    CacheService,
    document_key,
    user_docs_key,
    user_docs_pattern,
)
from app.services.notification_service import get_hub
from app.services.storage_service import StorageService
from app.utils.authorization import ensure_exists, verify_ownership
from app.utils.errors import BadRequestError, StorageError

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def document_snapshot(document: Document) -> dict:
    return DocumentResponse.model_validate(document).model_dump(mode="json")


class DocumentService:
    def __init__(self, cache: CacheService, storage: StorageService):
        self.cache = cache
        self.storage = storage

    async def _fetch(self, db: AsyncSession, document_id: int) -> Document | None:
        stmt = (
            select(Document)
            .options(selectinload(Document.category))
            .where(Document.id == document_id)
            .execution_options(populate_existing=True)
        )
        return await db.scalar(stmt)

    async def _load_owned(self, db: AsyncSession, document_id: int, user_id: int) -> Document:
        document = await self._fetch(db, document_id)
        ensure_exists(document, "Document")
        verify_ownership(document, user_id)
        return document

    async def _require_category(self, db: AsyncSession, category_id: int) -> None:
        if await db.get(Category, category_id) is None:
            raise BadRequestError("Category not found", code="INVALID_CATEGORY")

    async def _invalidate(self, user_id: int, document_id: int | None = None) -> None:
        if document_id is not None:
            await self.cache.delete(document_key(document_id))
        await self.cache.delete_pattern(user_docs_pattern(user_id))

    async def upload_document(
        self,
        db: AsyncSession,
        user_id: int,
        content: bytes,
        filename: str,
        content_type: str,
        name: str,
        category_id: int,
        description: str | None = None,
    ) -> dict:
        await self._require_category(db, category_id)

        # No row is written unless the payload is durably stored.
        stored = await self.storage.upload(content, filename, content_type, user_id)

        now = _now()
        document = Document(
            user_id=user_id,
            category_id=category_id,
            name=name,
            description=description,
            file_type=content_type,
            file_size=len(content),
            s3_key=stored.key,
            s3_url=stored.url,
            uploaded_at=now,
            updated_at=now,
        )
        db.add(document)
        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            try:
                await self.storage.delete(stored.key)
            except StorageError as exc:
                logger.warning("Could not remove orphaned object %s: %s", stored.key, exc)
            raise

        document = await self._fetch(db, document.id)
        snapshot = document_snapshot(document)
        logger.info("User %s uploaded document %s (%s bytes)", user_id, document.id, document.file_size)

        await self.cache.set(document_key(document.id), snapshot, DOCUMENT_TTL)
        await self._invalidate(user_id)

        await get_hub().publish_to_user(
            user_id,
            "document:uploaded",
            {"documentId": document.id, "name": document.name, "category": snapshot["category"]},
        )
        return snapshot

    async def list_documents(
        self,
        db: AsyncSession,
        user_id: int,
        page: int = 1,
        limit: int = 10,
        category: int | None = None,
        search: str | None = None,
    ) -> dict:
        async def load() -> dict:
            conditions = [Document.user_id == user_id]
            if category:
                conditions.append(Document.category_id == category)
            if search:
                conditions.append(Document.name.icontains(search, autoescape=True))

            # One AsyncSession cannot run statements concurrently, so the
            # count runs after the page query.
            rows = await db.scalars(
                select(Document)
                .options(selectinload(Document.category))
                .where(*conditions)
                .order_by(Document.uploaded_at.desc(), Document.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            total = await db.scalar(select(func.count(Document.id)).where(*conditions))

            return {
                "data": [document_snapshot(d) for d in rows],
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": total,
                    "total_pages": math.ceil(total / limit),
                },
            }

        key = user_docs_key(user_id, page, limit, category, search)
        return await self.cache.fetch(key, load, ttl=USER_DOCS_TTL)

    async def get_document(self, db: AsyncSession, document_id: int, user_id: int) -> dict:
        async def load() -> dict:
            return document_snapshot(await self._load_owned(db, document_id, user_id))

        # A cache hit for someone else's document must still be refused.
        return await self.cache.fetch(
            document_key(document_id),
            load,
            ttl=DOCUMENT_TTL,
            check=lambda snapshot: verify_ownership(snapshot, user_id),
        )

    async def update_document(self, db: AsyncSession, document_id: int, user_id: int, update: DocumentUpdate) -> dict:
        document = await self._load_owned(db, document_id, user_id)

        # Empty name / zero category id count as "not supplied"; description
        # is applied whenever the client sent the field, even as "".
        if update.name:
            document.name = update.name
        if update.category_id:
            await self._require_category(db, update.category_id)
            document.category_id = update.category_id
        if "description" in update.model_fields_set:
            document.description = update.description
        document.updated_at = _now()

        await db.commit()
        document = await self._fetch(db, document_id)
        snapshot = document_snapshot(document)

        await self._invalidate(user_id, document_id)

        await get_hub().publish_to_user(
            user_id,
            "document:updated",
            {
                "documentId": document.id,
                "name": document.name,
                "category": snapshot["category"],
                "description": document.description,
            },
        )
        return snapshot

    async def delete_document(self, db: AsyncSession, document_id: int, user_id: int) -> None:
        document = await self._load_owned(db, document_id, user_id)

        # An orphaned blob is preferable to a record that can never be deleted.
        try:
            await self.storage.delete(document.s3_key)
        except StorageError as exc:
            logger.warning("S3 delete failed for %s, deleting record anyway: %s", document.s3_key, exc)

        await db.delete(document)
        await db.commit()
        logger.info("User %s deleted document %s", user_id, document_id)

        await self._invalidate(user_id, document_id)

        await get_hub().publish_to_user(user_id, "document:deleted", {"documentId": document_id})

    async def get_download_url(self, db: AsyncSession, document_id: int, user_id: int) -> str:
        document = await self._load_owned(db, document_id, user_id)
        return await self.storage.sign_download_url(document.s3_key, settings.download_url_ttl_seconds)
