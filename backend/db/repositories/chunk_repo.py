"""
db/repositories/chunk_repo.py
------------------------------
Persistent chunk store for the memory index.

All chunks live in one collection key; every call reads it, filters or
patches it, and writes it back.  ``upsert_by_source`` is the only write path
used by MemoryStore and guarantees one chunk per source id.
"""

from __future__ import annotations

from db.kv_store import KeyValueStore
from schemas.memory import MemoryChunk

MEMORY_CHUNKS_KEY = "memory_chunks"


class ChunkRepository:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def _load(self) -> list[MemoryChunk]:
        raw = await self._store.get(MEMORY_CHUNKS_KEY) or []
        return [MemoryChunk.from_dict(row) for row in raw]

    async def _save(self, chunks: list[MemoryChunk]) -> None:
        await self._store.set(MEMORY_CHUNKS_KEY, [c.to_dict() for c in chunks])

    async def get_chunks(self, trip_id: str) -> list[MemoryChunk]:
        return [c for c in await self._load() if c.trip_id == trip_id]

    async def upsert_by_source(self, chunk: MemoryChunk) -> MemoryChunk:
        """
        Insert ``chunk`` or replace the chunk already stored for its source id.

        On replace the stored id is kept; text, embedding and timestamp are
        taken from ``chunk``.  Returns the chunk as stored.
        """
        chunks = await self._load()
        for idx, existing in enumerate(chunks):
            if existing.source_id == chunk.source_id:
                chunk.id = existing.id
                chunks[idx] = chunk
                break
        else:
            chunks.append(chunk)
        await self._save(chunks)
        return chunk

    async def delete_chunk_by_source(self, source_id: str) -> None:
        chunks = await self._load()
        await self._save([c for c in chunks if c.source_id != source_id])

    async def delete_chunks_for_trip(self, trip_id: str) -> None:
        chunks = await self._load()
        await self._save([c for c in chunks if c.trip_id != trip_id])
