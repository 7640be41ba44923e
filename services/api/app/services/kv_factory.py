from __future__ import annotations

from services.api.app.services.kv_base import KeyValueStore
from services.api.app.services.kv_sql import SqlKeyValueStore
from services.api.app.settings import Settings


def get_kv_store(settings: Settings) -> KeyValueStore:
    """Select the shared-state backend.

    Defaults to the application database so local dev and tests need no Redis.
    """

    backend = settings.kv_backend

    if backend in ("sql", "sqlite", "db"):
        return SqlKeyValueStore()

    if backend in ("redis", "upstash"):
        from services.api.app.services.kv_redis import RedisKeyValueStore

        if not settings.redis_url:
            raise ValueError("REDIS_URL is required when WAIVERDESK_KV_BACKEND=redis")
        return RedisKeyValueStore.from_url(settings.redis_url)

    raise ValueError(f"Unknown WAIVERDESK_KV_BACKEND={backend!r}. Expected sql or redis.")
