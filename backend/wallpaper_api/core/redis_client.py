from __future__ import annotations

import redis

from wallpaper_api.core.config import settings


def get_redis() -> redis.Redis:
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)


def get_binary_redis() -> redis.Redis:
    # Cached response bodies are raw bytes.
    return redis.Redis.from_url(settings.redis_url)
