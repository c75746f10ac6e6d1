"""
schemas/memory.py
-----------------
Memory-index and logistics records.

MemoryChunk   — one embedded sentence tied to exactly one source entity.
LogisticsEdge — directed (from, to, relation) triple; graphs are derived views
                and are never persisted.
FreeBlock     — computed gap between scheduled items.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum

from schemas.itinerary import new_id


class SourceKind(str, Enum):
    item        = "item"
    day_summary = "day_summary"
    knowledge   = "knowledge"


class LogisticsRelation(str, Enum):
    BEFORE     = "BEFORE"
    AFTER      = "AFTER"
    WITHIN_DAY = "WITHIN_DAY"
    NEAR       = "NEAR"
    SAME_AREA  = "SAME_AREA"


@dataclass
class MemoryChunk:
    id:          str
    trip_id:     str
    source_id:   str
    source_kind: str
    text:        str
    embedding:   list[float]
    created_at:  float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MemoryChunk":
        return cls(
            id=data["id"],
            trip_id=data["trip_id"],
            source_id=data["source_id"],
            source_kind=data.get("source_kind", SourceKind.item.value),
            text=data.get("text", ""),
            embedding=[float(v) for v in data.get("embedding") or []],
            created_at=float(data.get("created_at") or 0.0),
        )


def new_memory_chunk(
    trip_id:     str,
    source_id:   str,
    source_kind: SourceKind,
    text:        str,
    embedding:   list[float],
) -> MemoryChunk:
    return MemoryChunk(
        id=new_id("mem"),
        trip_id=trip_id,
        source_id=source_id,
        source_kind=source_kind.value,
        text=text,
        embedding=list(embedding),
        created_at=time.time(),
    )


@dataclass(frozen=True)
class LogisticsEdge:
    from_id:  str
    to_id:    str
    relation: LogisticsRelation


@dataclass
class LogisticsGraph:
    node_ids: set[str] = field(default_factory=set)
    edges:    list[LogisticsEdge] = field(default_factory=list)

    def add(self, from_id: str, to_id: str, relation: LogisticsRelation) -> None:
        self.edges.append(LogisticsEdge(from_id, to_id, relation))

    def related(self, item_id: str, relation: LogisticsRelation) -> list[str]:
        """Target ids of every outgoing ``relation`` edge from ``item_id``."""
        return [e.to_id for e in self.edges if e.from_id == item_id and e.relation == relation]


@dataclass(frozen=True)
class FreeBlock:
    start: datetime
    end:   datetime

    @property
    def minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60.0
