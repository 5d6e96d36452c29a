import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.utils.errors import StorageError

logger = logging.getLogger(__name__)

# Retrying an existence or permission failure cannot succeed.
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}
_FORBIDDEN_CODES = {"403", "AccessDenied", "Forbidden"}


@dataclass
class StoredObject:
    key: str
    url: str


def _is_terminal(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    code = str(error.get("Code", ""))
    return status in (403, 404) or code in _NOT_FOUND_CODES or code in _FORBIDDEN_CODES


class StorageService:
    def __init__(
        self,
        bucket: str | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        session: Any = None,
        retries: int | None = None,
        retry_delay_ms: int | None = None,
    ):
        self.bucket = bucket or settings.s3_bucket
        self.region = region or settings.aws_region
        self.endpoint_url = endpoint_url or settings.s3_endpoint_url
        self._access_key_id = access_key_id or settings.aws_access_key_id
        self._secret_access_key = secret_access_key or settings.aws_secret_access_key
        self._session = session or aioboto3.Session()
        self._retries = retries if retries is not None else settings.storage_retries
        self._retry_delay_ms = retry_delay_ms if retry_delay_ms is not None else settings.storage_retry_delay_ms

    def _client(self):
        return self._session.client(
            "s3",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self._access_key_id,
            aws_secret_access_key=self._secret_access_key,
        )

    def object_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def _execute_with_retry(self, operation: Callable[[Any], Awaitable[Any]]) -> Any:
        last_exc: Exception | None = None
        for attempt in range(self._retries):
            try:
                async with self._client() as s3:
                    return await operation(s3)
            except ClientError as exc:
                last_exc = exc
                logger.warning("S3 operation failed (attempt %s/%s): %s", attempt + 1, self._retries, exc)
                if _is_terminal(exc):
                    raise StorageError(str(exc), retryable=False) from exc
            except (BotoCoreError, OSError) as exc:
                last_exc = exc
                logger.warning("S3 operation failed (attempt %s/%s): %s", attempt + 1, self._retries, exc)
            if attempt < self._retries - 1:
                await asyncio.sleep(self._retry_delay_ms * (2 ** attempt) / 1000)

        logger.error("S3 operation failed after %s attempts: %s", self._retries, last_exc)
        raise StorageError(f"S3 operation failed after {self._retries} attempts") from last_exc

    async def upload(self, content: bytes, filename: str, content_type: str, owner_id: int | str) -> StoredObject:
        # The original filename goes into the key as-is.
        key = f"users/{owner_id}/{int(time.time() * 1000)}-{filename}"

        async def _put(s3):
            await s3.put_object(Bucket=self.bucket, Key=key, Body=content, ContentType=content_type)

        await self._execute_with_retry(_put)
        return StoredObject(key=key, url=self.object_url(key))

    async def delete(self, key: str) -> None:
        await self._execute_with_retry(lambda s3: s3.delete_object(Bucket=self.bucket, Key=key))

    async def sign_download_url(self, key: str, ttl_seconds: int | None = None) -> str:
        expires_in = ttl_seconds or settings.download_url_ttl_seconds
        return await self._execute_with_retry(
            lambda s3: s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        )


storage_service = StorageService()
