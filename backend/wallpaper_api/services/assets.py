from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from wallpaper_api.core.config import DeleteMode, settings
from wallpaper_api.core.errors import bad_request, internal_error, not_found
from wallpaper_api.services.metadata_index import ImageRecord, KeyExistsError, MetadataIndex, utc_now_iso
from wallpaper_api.services.response_cache import CachedResponse, ResponseCache, cache_identity
from wallpaper_api.services.storage import ObjectStore, StoredObject


log = logging.getLogger(__name__)


class UploadOutcome(str, enum.Enum):
    created = "created"
    exists = "exists"


@dataclass
class FetchResult:
    key: str
    identity: str
    response: CachedResponse
    from_cache: bool


class AssetService:
    """Orchestrates the metadata index, the object store and the response cache.

    Ordering rules:
    - upload writes bytes before inserting the row, and removes the bytes
      again if the insert fails;
    - delete removes bytes before touching the row;
    - only fetch reads or writes the response cache.
    """

    def __init__(
        self,
        *,
        index: MetadataIndex,
        store: ObjectStore,
        cache: ResponseCache | None = None,
        api_host: str | None = None,
        delete_mode: DeleteMode | str | None = None,
        favorites_enabled: bool | None = None,
        max_age_seconds: int | None = None,
    ):
        self.index = index
        self.store = store
        self.cache = cache
        self.api_host = str(api_host if api_host is not None else settings.api_host)
        self.delete_mode = DeleteMode(delete_mode if delete_mode is not None else settings.delete_mode)
        self.favorites_enabled = bool(settings.favorites_enabled if favorites_enabled is None else favorites_enabled)
        self.max_age_seconds = int(max_age_seconds if max_age_seconds is not None else settings.cache_max_age_seconds)

    @classmethod
    def from_settings(cls) -> "AssetService":
        from wallpaper_api.db.session import SessionLocal

        return cls(
            index=MetadataIndex(SessionLocal),
            store=ObjectStore(),
            cache=ResponseCache() if settings.cache_enabled else None,
        )

    def _revision(self, record: ImageRecord) -> str:
        if self.favorites_enabled:
            return f"{record.create_date}|{int(record.favorite)}"
        return record.create_date

    def _build_response(self, record: ImageRecord, obj: StoredObject) -> CachedResponse:
        headers: dict[str, str] = dict(obj.http_metadata)
        if obj.http_etag:
            headers["ETag"] = obj.http_etag
        headers["Image-Id"] = record.key
        if self.favorites_enabled:
            headers["Favorite"] = "true" if record.favorite else "false"
        # Keys are immutable and bytes are never overwritten in place.
        headers["Cache-Control"] = f"public, max-age={self.max_age_seconds}, s-maxage={self.max_age_seconds}"
        return CachedResponse(status_code=200, headers=headers, body=obj.body, revision=self._revision(record))

    def fetch(self, key: str = "") -> FetchResult:
        key = str(key or "")
        if not key:
            record = self.index.random_live()
            if record is None:
                log.warning("fetch: no live images")
                raise not_found("no assets")
        else:
            record = self.index.get(key)
            if record is None or not record.alive:
                log.warning("fetch: image not found key=%s", key)
                raise not_found("asset not found")

        identity = cache_identity(self.api_host, record.key)

        if self.cache is not None:
            cached = self.cache.match(identity)
            if cached is not None and cached.revision == self._revision(record):
                log.debug("fetch: cache hit identity=%s", identity)
                return FetchResult(key=record.key, identity=identity, response=cached, from_cache=True)

        obj = self.store.get(record.key)
        if obj is None:
            log.error("fetch: index row without object key=%s", record.key)
            raise not_found("object missing")

        response = self._build_response(record, obj)
        return FetchResult(key=record.key, identity=identity, response=response, from_cache=False)

    def populate_cache(self, identity: str, response: CachedResponse) -> None:
        """Single best-effort cache write; never raises."""
        if self.cache is None:
            return
        try:
            self.cache.put(identity, response)
        except Exception:
            log.warning("populate_cache failed identity=%s", identity, exc_info=True)

    def upload(self, key: str, data: bytes, *, content_type: str | None = None) -> UploadOutcome:
        if not key:
            raise bad_request()

        existing = self.index.get(key)
        if existing is not None:
            log.warning("upload: image exists, skip uploading key=%s alive=%s", key, existing.alive)
            return UploadOutcome.exists

        self.store.put(key, data, content_type=content_type)

        try:
            self.index.insert(key, create_date=utc_now_iso())
        except KeyExistsError:
            # A concurrent upload inserted first. Our put may have replaced its bytes, so
            # deleting them would leave its row with no object at all.
            log.warning("upload: lost insert race key=%s", key)
            return UploadOutcome.exists
        except Exception as e:
            self._discard_orphan(key)
            raise internal_error("Database error") from e

        log.info("upload: created key=%s bytes=%s", key, len(data))
        return UploadOutcome.created

    def _discard_orphan(self, key: str) -> None:
        try:
            self.store.delete(key)
        except Exception:
            log.warning("upload: failed to remove orphan object key=%s", key, exc_info=True)

    def update(self, key: str, favorite: bool) -> int:
        if not key:
            raise bad_request()
        # No existence check: a missing key updates zero rows and still succeeds.
        rows = self.index.set_favorite(key, favorite)
        log.info("update: key=%s favorite=%s rows=%s", key, favorite, rows)
        return rows

    def delete(self, key: str) -> int:
        if not key:
            raise bad_request()
        self.store.delete(key)
        rows = self.index.delete(key, self.delete_mode, delete_date=utc_now_iso())
        log.info("delete: key=%s mode=%s rows=%s", key, self.delete_mode.value, rows)
        return rows
