from __future__ import annotations

import redis.asyncio as redis
from redis.exceptions import RedisError
from services.api.app.services.kv_base import KeyValueStoreUnavailableError, ListWindow


class RedisKeyValueStore:
    """Key-value primitives on Redis (Upstash speaks the same protocol).

    A capped list keeps a sibling `<key>:seq` counter so readers can resume from a
    cursor after older entries were trimmed away.
    """

    backend = "redis"

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisKeyValueStore:
        return cls(redis.Redis.from_url(url, decode_responses=True))

    async def append_capped(self, key: str, value: str, cap: int) -> int:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.rpush(key, value)
                pipe.ltrim(key, -max(1, cap), -1)
                pipe.incr(_seq_key(key))
                _length, _trimmed, seq = await pipe.execute()
        except (RedisError, OSError) as e:
            raise KeyValueStoreUnavailableError(self.backend, "append_capped", e) from e
        return int(seq)

    async def read_after(self, key: str, after: int) -> ListWindow:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.get(_seq_key(key))
                pipe.lrange(key, 0, -1)
                raw_seq, values = await pipe.execute()
        except (RedisError, OSError) as e:
            raise KeyValueStoreUnavailableError(self.backend, "read_after", e) from e

        last = int(raw_seq or 0)
        first = last - len(values) + 1
        entries = [
            (first + i, value) for i, value in enumerate(values) if first + i > after
        ]
        return ListWindow(entries=entries, last_seq=max(after, last))

    async def incr(self, key: str) -> int:
        try:
            return int(await self._client.incr(key))
        except (RedisError, OSError) as e:
            raise KeyValueStoreUnavailableError(self.backend, "incr", e) from e

    async def get_int(self, key: str) -> int:
        try:
            raw = await self._client.get(key)
        except (RedisError, OSError) as e:
            raise KeyValueStoreUnavailableError(self.backend, "get_int", e) from e
        try:
            return int(raw or 0)
        except ValueError:
            return 0

    async def set_add(self, key: str, member: str) -> bool:
        try:
            return int(await self._client.sadd(key, member)) == 1
        except (RedisError, OSError) as e:
            raise KeyValueStoreUnavailableError(self.backend, "set_add", e) from e

    async def set_remove(self, key: str, member: str) -> bool:
        try:
            return int(await self._client.srem(key, member)) == 1
        except (RedisError, OSError) as e:
            raise KeyValueStoreUnavailableError(self.backend, "set_remove", e) from e

    async def set_contains(self, key: str, member: str) -> bool:
        try:
            return bool(await self._client.sismember(key, member))
        except (RedisError, OSError) as e:
            raise KeyValueStoreUnavailableError(self.backend, "set_contains", e) from e

    async def set_members(self, key: str) -> list[str]:
        try:
            members = await self._client.smembers(key)
        except (RedisError, OSError) as e:
            raise KeyValueStoreUnavailableError(self.backend, "set_members", e) from e
        return sorted(str(m) for m in members)

    async def close(self) -> None:
        await self._client.aclose()


def _seq_key(key: str) -> str:
    return f"{key}:seq"
