"""
modules/memory/memory_store.py
--------------------------------
MemoryStore — indexes itinerary facts as embedded chunks and searches them.

  index_item / reindex_item   canonicalize → embed → upsert by source id
  index_items                 sequential batch; one failure is logged, not fatal
  index_knowledge             free-text chunks (cloud planner context)
  index_day_summary           one chunk per day plan
  search                      embed query → trip's chunks → cosine top-k
  remove_by_source / remove_trip

Upsert contract: indexing a source that already has a chunk replaces its text
and embedding and keeps the stored chunk id, so a source never has two chunks.
Embedding failures propagate from index_item() and search().
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

import config
from modules.memory import cosine_index
from modules.memory.canonicalize import canonicalize, canonicalize_day_summary
from modules.tool_usage.engine import EmbeddingEngine
from schemas.itinerary import DayPlan, Place, TripItem
from schemas.memory import MemoryChunk, SourceKind, new_memory_chunk

logger = logging.getLogger(__name__)

PlaceLookup = Callable[[str], Awaitable[Optional[Place]]]


class ChunkStore(Protocol):
    async def get_chunks(self, trip_id: str) -> list[MemoryChunk]: ...
    async def upsert_by_source(self, chunk: MemoryChunk) -> MemoryChunk: ...
    async def delete_chunk_by_source(self, source_id: str) -> None: ...
    async def delete_chunks_for_trip(self, trip_id: str) -> None: ...


@dataclass
class MemorySearchResult:
    chunk:      MemoryChunk
    similarity: float


@dataclass
class KnowledgeBaseStatus:
    item_count:      int
    knowledge_count: int
    total_count:     int


class MemoryStore:
    def __init__(self, chunks: ChunkStore, embedder: EmbeddingEngine) -> None:
        self._chunks = chunks
        self._embedder = embedder

    # ── indexing ──────────────────────────────────────────────────────────────

    async def index_item(self, item: TripItem, place: Optional[Place] = None) -> MemoryChunk:
        text = canonicalize(item, place)
        embedding = await self._embedder.embed(text)
        chunk = new_memory_chunk(item.trip_id, item.id, SourceKind.item, text, embedding)
        return await self._chunks.upsert_by_source(chunk)

    async def reindex_item(self, item: TripItem, place: Optional[Place] = None) -> MemoryChunk:
        """Re-index after a modification; relies on upsert-by-source."""
        return await self.index_item(item, place)

    async def index_items(
        self,
        items:     list[TripItem],
        get_place: Optional[PlaceLookup] = None,
    ) -> list[MemoryChunk]:
        indexed: list[MemoryChunk] = []
        for item in items:
            try:
                place = await get_place(item.place_id) if (item.place_id and get_place) else None
                indexed.append(await self.index_item(item, place))
            except Exception as exc:
                logger.warning("Failed to index item %s (%s): %s", item.id, item.title, exc)
        return indexed

    async def index_knowledge(self, trip_id: str, texts: list[str]) -> list[MemoryChunk]:
        indexed: list[MemoryChunk] = []
        for text in texts:
            if not text or not text.strip():
                continue
            try:
                embedding = await self._embedder.embed(text)
                chunk = new_memory_chunk(
                    trip_id, f"knowledge_{uuid.uuid4().hex[:12]}", SourceKind.knowledge, text, embedding,
                )
                indexed.append(await self._chunks.upsert_by_source(chunk))
            except Exception as exc:
                logger.warning("Failed to index knowledge chunk for trip %s: %s", trip_id, exc)
        return indexed

    async def index_day_summary(self, day: DayPlan, items: list[TripItem]) -> MemoryChunk:
        text = canonicalize_day_summary(day, items)
        embedding = await self._embedder.embed(text)
        chunk = new_memory_chunk(day.trip_id, day.id, SourceKind.day_summary, text, embedding)
        return await self._chunks.upsert_by_source(chunk)

    # ── search ────────────────────────────────────────────────────────────────

    async def search(self, trip_id: str, query: str, top_k: int = config.MEMORY_TOP_K) -> list[MemorySearchResult]:
        query_embedding = await self._embedder.embed(query)
        return await self.search_by_embedding(trip_id, query_embedding, top_k)

    async def search_by_embedding(
        self,
        trip_id:         str,
        query_embedding: list[float],
        top_k:           int = config.MEMORY_TOP_K,
    ) -> list[MemorySearchResult]:
        chunks = await self._chunks.get_chunks(trip_id)
        if not chunks:
            return []
        return [
            MemorySearchResult(chunk=chunk, similarity=score)
            for chunk, score in cosine_index.search(query_embedding, chunks, top_k)
        ]

    # ── invalidation ──────────────────────────────────────────────────────────

    async def remove_by_source(self, source_id: str) -> None:
        await self._chunks.delete_chunk_by_source(source_id)

    async def remove_trip(self, trip_id: str) -> None:
        await self._chunks.delete_chunks_for_trip(trip_id)

    async def knowledge_base_status(self, trip_id: str) -> KnowledgeBaseStatus:
        chunks = await self._chunks.get_chunks(trip_id)
        return KnowledgeBaseStatus(
            item_count=sum(1 for c in chunks if c.source_kind == SourceKind.item.value),
            knowledge_count=sum(1 for c in chunks if c.source_kind == SourceKind.knowledge.value),
            total_count=len(chunks),
        )
