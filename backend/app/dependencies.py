from dataclasses import dataclass

from fastapi import Depends, Header

from app.services.cache_service import CacheService, cache_service
from app.services.category_service import CategoryService
from app.services.document_service import DocumentService
from app.services.storage_service import StorageService, storage_service
from app.utils.errors import AuthenticationError
from app.utils.security import decode_access_token


@dataclass
class CurrentUser:
    id: int
    email: str


def user_from_token(token: str | None) -> CurrentUser:
    if not token:
        raise AuthenticationError("No token provided", code="NO_TOKEN")
    payload = decode_access_token(token)
    return CurrentUser(id=int(payload["userId"]), email=payload.get("email", ""))


def bearer_token(authorization: str | None) -> str | None:
    """Extract the credential from an ``Authorization`` header; the scheme is case-insensitive."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


async def get_current_user(authorization: str | None = Header(None)) -> CurrentUser:
    return user_from_token(bearer_token(authorization))


def get_cache() -> CacheService:
    return cache_service


def get_storage() -> StorageService:
    return storage_service


def get_category_service(cache: CacheService = Depends(get_cache)) -> CategoryService:
    return CategoryService(cache)


def get_document_service(
    cache: CacheService = Depends(get_cache),
    storage: StorageService = Depends(get_storage),
) -> DocumentService:
    return DocumentService(cache, storage)
