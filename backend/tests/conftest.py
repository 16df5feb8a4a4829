import hashlib
import os
import sys
import time
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

# Must be set before wallpaper_api.core.config is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("AUTH_KEY_SECRET", "test-secret")
os.environ.setdefault("API_HOST", "https://wallpapers.test/")

backend_dir = Path(__file__).resolve().parents[1]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from wallpaper_api.core.config import DeleteMode
from wallpaper_api.db.base import Base
from wallpaper_api.main import create_app
from wallpaper_api.models.image import Image  # noqa: F401
from wallpaper_api.services.assets import AssetService
from wallpaper_api.services.metadata_index import MetadataIndex
from wallpaper_api.services.response_cache import ResponseCache
from wallpaper_api.services.storage import ObjectListing, StoredObject


AUTH_SECRET = "test-secret"
AUTH = {"X-Bucket-Auth-Key": AUTH_SECRET}


class _MemoryRedis:
    def __init__(self):
        self._data: dict[str, tuple[bytes, float | None]] = {}
        self.calls: Counter = Counter()
        self.fail_set = False
        self.fail_get = False

    def ping(self):
        return True

    def _now(self) -> float:
        return time.time()

    def get(self, key: str):
        self.calls["get"] += 1
        if self.fail_get:
            raise ConnectionError("redis down")
        v = self._data.get(key)
        if not v:
            return None
        value, exp = v
        if exp is not None and exp <= self._now():
            self._data.pop(key, None)
            return None
        return value

    def set(self, key: str, value, ex: int | None = None, nx: bool = False):
        self.calls["set"] += 1
        if self.fail_set:
            raise ConnectionError("redis down")
        if nx and key in self._data:
            return None
        if isinstance(value, str):
            value = value.encode("utf-8")
        exp = (self._now() + int(ex)) if ex else None
        self._data[key] = (value, exp)
        return True

    def delete(self, key: str):
        self._data.pop(key, None)
        return 1

    def ttl(self, key: str):
        v = self._data.get(key)
        if not v:
            return -2
        _, exp = v
        if exp is None:
            return -1
        return max(0, int(exp - self._now()))

    def keys(self):
        return list(self._data)


class MemoryObjectStore:
    """In-memory stand-in for ObjectStore that counts every call."""

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str | None, datetime]] = {}
        self.calls: Counter = Counter()
        self.fail_put = False
        self.fail_get = False
        self.fail_delete = False
        self.bucket = "test-bucket"

    def get(self, key: str) -> StoredObject | None:
        self.calls["get"] += 1
        if self.fail_get:
            raise RuntimeError("s3 unavailable")
        entry = self.objects.get(key)
        if entry is None:
            return None
        data, content_type, _ = entry
        meta = {"Content-Type": content_type} if content_type else {}
        return StoredObject(key=key, body=data, etag=hashlib.md5(data).hexdigest(), http_metadata=meta)

    def put(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        self.calls["put"] += 1
        if self.fail_put:
            raise RuntimeError("s3 unavailable")
        self.objects[key] = (bytes(data), content_type, datetime.now(timezone.utc))

    def delete(self, key: str) -> None:
        self.calls["delete"] += 1
        if self.fail_delete:
            raise RuntimeError("s3 unavailable")
        self.objects.pop(key, None)

    def list_objects(self, *, prefix: str = ""):
        for key, (data, _, lm) in sorted(self.objects.items()):
            if key.startswith(prefix):
                yield ObjectListing(key=key, last_modified=lm, size=len(data))

    def ping(self) -> None:
        return None

    def total_calls(self) -> int:
        return sum(self.calls.values())


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture()
def index(session_factory):
    return MetadataIndex(session_factory)


@pytest.fixture()
def store():
    return MemoryObjectStore()


@pytest.fixture()
def mem_redis():
    return _MemoryRedis()


@pytest.fixture()
def cache(mem_redis):
    return ResponseCache(mem_redis, ttl_seconds=31536000, key_prefix="respcache:")


@pytest.fixture()
def make_service(index, store, cache):
    def _make(**overrides) -> AssetService:
        kwargs = {
            "index": index,
            "store": store,
            "cache": cache,
            "api_host": "https://wallpapers.test/",
            "delete_mode": DeleteMode.soft,
            "favorites_enabled": True,
            "max_age_seconds": 31536000,
        }
        kwargs.update(overrides)
        return AssetService(**kwargs)

    return _make


@pytest.fixture()
def make_client(make_service):
    def _make(service: AssetService | None = None, *, raise_server_exceptions: bool = True, **overrides) -> TestClient:
        app = create_app(service or make_service(**overrides), auth_secret=AUTH_SECRET)
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)

    return _make


@pytest.fixture()
def client(make_client):
    return make_client()
