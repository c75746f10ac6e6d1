"""
db/
----
Storage layer for Trip Brain.

Storage architecture:
  KeyValueStore (db/kv_store.py) — one JSON document per collection
    MemoryKVStore   in-process dict, default and used by the tests
    RedisKVStore    redis.asyncio, STORAGE_BACKEND=redis
    collections: trips, day_plans, trip_items, places, memory_chunks

  Repositories (db/repositories/) — read-modify-write over one collection
    TripRepository    trips, day plans, trip items, places
    ChunkRepository   memory chunks, unique by source_id

Public exports (import from here for convenience):
    from db import MemoryKVStore, RedisKVStore, get_redis
    from db.repositories.trip_repo import TripRepository
    from db.repositories.chunk_repo import ChunkRepository
"""

from db.kv_store import KeyValueStore, MemoryKVStore, RedisKVStore
from db.redis_client import close_redis, get_redis

__all__ = ["KeyValueStore", "MemoryKVStore", "RedisKVStore", "get_redis", "close_redis"]
