"""
db/kv_store.py
---------------
Key-value storage backends.  Values are JSON-serialisable Python objects.

  MemoryKVStore — in-process dict; default for tests and single-process use.
  RedisKVStore  — JSON strings in Redis via the shared asyncio client.

Neither backend offers optimistic concurrency: repositories built on top do
read-modify-write on whole collections, so callers must serialise mutations
per trip.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Optional, Protocol

import redis.asyncio as aioredis


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...
    async def set(self, key: str, value: Any) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def keys(self) -> list[str]: ...


class MemoryKVStore:
    """Dict-backed store.  Values are deep-copied in and out, like a real store."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self) -> list[str]:
        return list(self._data)


class RedisKVStore:
    def __init__(self, client: aioredis.Redis, prefix: str = "") -> None:
        self._r = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}" if self._prefix else key

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._r.get(self._key(key))
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        await self._r.set(self._key(key), json.dumps(value, default=str))

    async def delete(self, key: str) -> None:
        await self._r.delete(self._key(key))

    async def keys(self) -> list[str]:
        pattern = f"{self._prefix}:*" if self._prefix else "*"
        strip = len(self._prefix) + 1 if self._prefix else 0
        return [k[strip:] async for k in self._r.scan_iter(pattern)]
