"""
db/redis_client.py
-------------------
redis-py asyncio client — process-wide singleton.

Key schema (one JSON document per collection, mirrors the on-device
key-value store the mobile client uses):

  {STORAGE_KEY_PREFIX}:trips           list[Trip]
  {STORAGE_KEY_PREFIX}:day_plans       list[DayPlan]
  {STORAGE_KEY_PREFIX}:trip_items      list[TripItem]
  {STORAGE_KEY_PREFIX}:places          list[Place]
  {STORAGE_KEY_PREFIX}:memory_chunks   list[MemoryChunk]

Environment variables (set in config.py):
    REDIS_HOST        default: localhost
    REDIS_PORT        default: 6379
    REDIS_DB          default: 0
    REDIS_PASSWORD    default: ""  (empty = no auth)
"""

from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis

import config

# Module-level singleton; initialised lazily on first call to get_redis()
_client: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    """Return the singleton Redis client, creating it on first call."""
    global _client
    if _client is None:
        kwargs: dict[str, Any] = {
            "host":             config.REDIS_HOST,
            "port":             config.REDIS_PORT,
            "db":               config.REDIS_DB,
            "decode_responses": True,   # return str, not bytes
        }
        if config.REDIS_PASSWORD:
            kwargs["password"] = config.REDIS_PASSWORD
        _client = aioredis.Redis(**kwargs)
    return _client


async def close_redis() -> None:
    """Close the singleton connection pool (app shutdown)."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
