import fnmatch
import os
import tempfile
from contextlib import asynccontextmanager

# Settings are read at import time; point the lifespan at throwaway resources.
_LIFESPAN_DIR = tempfile.mkdtemp(prefix="document-hub-tests-")
os.environ.setdefault("DOCHUB_DATABASE_URL", f"sqlite+aiosqlite:///{_LIFESPAN_DIR}/lifespan.db")
os.environ.setdefault("DOCHUB_REDIS_URL", "")

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import NullPool

import app.models  # noqa: F401
from app.database import Base, get_db, get_engine
from app.dependencies import get_cache, get_storage
from app.main import app
from app.services.cache_service import CacheService
from app.services.storage_service import StorageService


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` (decode_responses=True)."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.pings = 0

    async def ping(self):
        self.pings += 1
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def exists(self, *keys):
        return sum(1 for key in keys if key in self.store)

    async def scan_iter(self, match=None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self):
        pass


class BrokenRedis:
    """Every call fails as if the server were unreachable."""

    def __init__(self):
        self.calls = 0

    def _fail(self, *args, **kwargs):
        self.calls += 1
        raise RedisConnectionError("Connection refused")

    async def ping(self):
        self._fail()

    async def get(self, key):
        self._fail()

    async def set(self, key, value, ex=None):
        self._fail()

    async def delete(self, *keys):
        self._fail()

    async def exists(self, *keys):
        self._fail()

    async def scan_iter(self, match=None):
        self._fail()
        yield  # pragma: no cover

    async def aclose(self):
        pass


class FakeS3:
    """The subset of the aiobotocore S3 client the storage service calls."""

    def __init__(self):
        self.objects: dict[str, dict] = {}
        self.errors: list[Exception] = []
        self.calls = 0

    def _maybe_fail(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)

    async def put_object(self, Bucket, Key, Body, ContentType):
        self._maybe_fail()
        self.objects[Key] = {"bucket": Bucket, "body": Body, "content_type": ContentType}
        return {}

    async def delete_object(self, Bucket, Key):
        self._maybe_fail()
        self.objects.pop(Key, None)
        return {}

    async def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        self._maybe_fail()
        return f"https://signed.example.com/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"


class FakeS3Session:
    def __init__(self, s3: FakeS3):
        self.s3 = s3

    @asynccontextmanager
    async def _client(self):
        yield self.s3

    def client(self, service_name, **kwargs):
        return self._client()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def cache(fake_redis):
    return CacheService(client=fake_redis, retry_delay_ms=0)


@pytest.fixture
def storage(fake_s3):
    return StorageService(
        bucket="test-bucket",
        region="us-east-1",
        session=FakeS3Session(fake_s3),
        retry_delay_ms=0,
    )


@pytest.fixture
def test_db(tmp_path):
    db_path = tmp_path / "db.sqlite"
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = get_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    TestSession = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    async def override_get_db():
        async with TestSession() as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestSession
    app.dependency_overrides.clear()


@pytest.fixture
def client(test_db, cache, storage):
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
