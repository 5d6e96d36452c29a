"""Advisory Redis cache.

The cache is an accelerator, never a dependency: every public method swallows
connection and command failures after a bounded number of retries and
reports them as a miss (``None``) or a failed ack (``False``). Callers never
need a try/except around it.
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

from redis import asyncio as redis
from redis.exceptions import RedisError

from app.config import settings

logger = logging.getLogger(__name__)

DOCUMENT_TTL = 600
USER_DOCS_TTL = 300
CATEGORIES_TTL = 3600

CATEGORIES_ALL_KEY = "CATEGORIES:ALL"
CATEGORIES_PATTERN = "CATEGORIES:*"


def document_key(document_id: int) -> str:
    return f"DOCUMENT:{document_id}"


def user_docs_key(user_id: int, page: int, limit: int, category: int | None, search: str | None) -> str:
    return (
        f"USER_DOCS:{user_id}:page:{page}:limit:{limit}"
        f":category:{category or 'all'}:search:{search or ''}"
    )


def user_docs_pattern(user_id: int) -> str:
    return f"USER_DOCS:{user_id}:*"


class CacheUnavailable(Exception):
    """Raised internally when the retry budget is spent; never leaves this module."""


class CacheService:
    def __init__(
        self,
        url: str | None = None,
        client: Any = None,
        retries: int | None = None,
        retry_delay_ms: int | None = None,
    ):
        self._url = settings.redis_url if url is None else url
        self._client = client
        self._connected = False
        self._retries = retries if retries is not None else settings.cache_retries
        self._retry_delay_ms = retry_delay_ms if retry_delay_ms is not None else settings.cache_retry_delay_ms

    @property
    def enabled(self) -> bool:
        return self._client is not None or bool(self._url)

    async def _ensure_connected(self):
        if not self.enabled:
            raise CacheUnavailable("cache disabled")
        if self._client is None:
            try:
                self._client = redis.from_url(self._url, decode_responses=True)
            except ValueError as exc:
                # A malformed URL will not fix itself; skip the retry loop.
                raise CacheUnavailable(f"invalid Redis URL: {exc}") from exc
        if not self._connected:
            await self._client.ping()
            self._connected = True
        return self._client

    async def _execute_with_retry(self, operation: Callable[[Any], Awaitable[Any]]) -> Any:
        last_exc: Exception | None = None
        for attempt in range(1, self._retries + 1):
            try:
                client = await self._ensure_connected()
                return await operation(client)
            except (RedisError, OSError) as exc:
                last_exc = exc
                # Force a fresh PING on the next attempt.
                self._connected = False
                logger.warning("Redis operation failed (attempt %s/%s): %s", attempt, self._retries, exc)
                if attempt < self._retries:
                    await asyncio.sleep(self._retry_delay_ms * attempt / 1000)
        raise CacheUnavailable(str(last_exc))

    async def get(self, key: str) -> Any:
        try:
            raw = await self._execute_with_retry(lambda c: c.get(key))
        except CacheUnavailable as exc:
            logger.warning("Cache get degraded to miss for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        payload = json.dumps(value)
        try:
            await self._execute_with_retry(lambda c: c.set(key, payload, ex=ttl))
        except CacheUnavailable as exc:
            logger.warning("Cache set skipped for %s: %s", key, exc)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            await self._execute_with_retry(lambda c: c.delete(key))
        except CacheUnavailable as exc:
            logger.warning("Cache delete skipped for %s: %s", key, exc)
            return False
        return True

    async def delete_pattern(self, pattern: str) -> bool:
        async def _delete_matching(client) -> int:
            keys = [key async for key in client.scan_iter(match=pattern)]
            if not keys:
                return 0
            return await client.delete(*keys)

        try:
            await self._execute_with_retry(_delete_matching)
        except CacheUnavailable as exc:
            logger.warning("Cache invalidation skipped for %s: %s", pattern, exc)
            return False
        return True

    async def exists(self, key: str) -> bool:
        try:
            count = await self._execute_with_retry(lambda c: c.exists(key))
        except CacheUnavailable:
            return False
        return count == 1

    async def fetch(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: int | None = None,
        check: Callable[[Any], None] | None = None,
    ) -> Any:
        """Return the cached value for ``key`` or compute, store and return it.

        ``check`` runs on both cached and freshly loaded values, so an
        authorization rule cannot be skipped by a cache hit.
        """
        cached = await self.get(key)
        if cached is not None:
            if check:
                check(cached)
            return cached

        value = await loader()
        if check:
            check(value)
        await self.set(key, value, ttl)
        return value

    async def close(self) -> None:
        if self._client is not None and hasattr(self._client, "aclose"):
            try:
                await self._client.aclose()
            except (RedisError, OSError) as exc:
                logger.warning("Error closing Redis client: %s", exc)
        self._connected = False


cache_service = CacheService()
