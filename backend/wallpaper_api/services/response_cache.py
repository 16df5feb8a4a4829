from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from urllib.parse import quote

from wallpaper_api.core.config import settings
from wallpaper_api.core.redis_client import get_binary_redis


log = logging.getLogger(__name__)


def cache_identity(api_host: str, key: str) -> str:
    """Normalized lookup key for a resolved image key.

    The same identity is produced for "/" (random) and "/{key}" so a random
    hit is cached under its own key.
    """
    host = str(api_host or "").strip()
    if not host.endswith("/"):
        host += "/"
    return f"{host}get/{quote(key, safe='')}"


@dataclass
class CachedResponse:
    status_code: int
    headers: dict[str, str]
    body: bytes
    # Record revision the entry was built from (create_date + favorite).
    revision: str = ""

    def dumps(self) -> bytes:
        return json.dumps(
            {
                "status": int(self.status_code),
                "headers": dict(self.headers),
                "body": base64.b64encode(self.body).decode("ascii"),
                "revision": self.revision,
            },
            ensure_ascii=False,
        ).encode("utf-8")

    @classmethod
    def loads(cls, raw: bytes | str) -> "CachedResponse":
        data = json.loads(raw)
        return cls(
            status_code=int(data.get("status") or 200),
            headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
            body=base64.b64decode(data.get("body") or ""),
            revision=str(data.get("revision") or ""),
        )


class ResponseCache:
    """Best-effort response cache in redis.

    Derived state only: entries can vanish at any time and a broken cache
    behaves like an empty one.
    """

    def __init__(self, redis_client=None, *, ttl_seconds: int | None = None, key_prefix: str | None = None):
        self._redis = redis_client
        self.ttl_seconds = int(ttl_seconds if ttl_seconds is not None else settings.cache_max_age_seconds)
        self.key_prefix = key_prefix if key_prefix is not None else settings.cache_key_prefix

    @property
    def redis(self):
        if self._redis is None:
            self._redis = get_binary_redis()
        return self._redis

    def _name(self, identity: str) -> str:
        return f"{self.key_prefix}{identity}"

    def match(self, identity: str) -> CachedResponse | None:
        try:
            raw = self.redis.get(self._name(identity))
        except Exception as e:
            log.warning("response_cache.match failed identity=%s: %s", identity, e)
            return None
        if not raw:
            return None
        try:
            return CachedResponse.loads(raw)
        except (ValueError, TypeError) as e:
            log.warning("response_cache: dropping unreadable entry identity=%s: %s", identity, e)
            return None

    def put(self, identity: str, response: CachedResponse) -> None:
        ex = self.ttl_seconds if self.ttl_seconds > 0 else None
        self.redis.set(self._name(identity), response.dumps(), ex=ex)

    def ping(self) -> None:
        self.redis.ping()
