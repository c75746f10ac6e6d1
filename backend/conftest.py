"""
conftest.py
───────────
Shared fakes for the Trip Brain test-suite.

  FakeEngine        — deterministic hashed bag-of-words embeddings plus a
                      scripted completion reply; no model, no server.
  FakeCloudPlanner  — returns a preset CloudPlanResponse and records calls.
  make_item()       — TripItem on 2025-03-15 with HH:MM start / end.

Structured event logs are disabled for every test.
"""

from __future__ import annotations

import re
import zlib
from typing import Optional

import pytest

from db.kv_store import MemoryKVStore
from db.repositories.chunk_repo import ChunkRepository
from db.repositories.trip_repo import TripRepository
from modules.errors import EmbeddingError
from modules.memory.memory_store import MemoryStore
from modules.observability.logger import StructuredLogger
from modules.tool_usage.engine import (
    CancellationToken,
    ChatMessage,
    CompletionOptions,
    CompletionResult,
    EngineState,
    TokenCallback,
)
from modules.tool_usage.network_monitor import NetworkMonitor
from schemas.itinerary import DayPlan, Place, Trip, TripItem
from schemas.planner import CloudPlanResponse, PlannerRequest

TRIP_ID = "trip_tokyo"
DAY_ID = "day_1"
DAY_DATE = "2025-03-15"

_WORD_RE = re.compile(r"[a-z0-9]+")


class FakeEngine:
    def __init__(self, reply: str = "Sure.", ready: bool = True, dims: int = 256) -> None:
        self.reply = reply
        self.dims = dims
        self.fail_on: Optional[str] = None
        self.calls: list[list[ChatMessage]] = []
        self._state = EngineState(is_downloaded=ready, download_progress=1.0 if ready else 0.0)

    def state(self) -> EngineState:
        return self._state

    async def download(self) -> None:
        self._state = EngineState(is_downloaded=True, download_progress=1.0)

    async def embed(self, text: str) -> list[float]:
        if self.fail_on and self.fail_on in text:
            raise EmbeddingError(f"cannot embed {text!r}")
        vec = [0.0] * self.dims
        for word in _WORD_RE.findall(text.lower()):
            vec[zlib.crc32(word.encode()) % self.dims] += 1.0
        return vec

    async def complete(
        self,
        messages: list[ChatMessage],
        options:  Optional[CompletionOptions] = None,
        on_token: Optional[TokenCallback] = None,
        cancel:   Optional[CancellationToken] = None,
    ) -> CompletionResult:
        self.calls.append(list(messages))
        tokens = re.findall(r"\S+\s*", self.reply)
        for token in tokens:
            if cancel is not None:
                cancel.raise_if_cancelled()
            if on_token:
                on_token(token)
        return CompletionResult(response=self.reply, total_tokens=len(tokens))

    @property
    def system_prompt(self) -> str:
        return self.calls[-1][0].content


class FakeCloudPlanner:
    def __init__(self, response: Optional[CloudPlanResponse] = None) -> None:
        self.response = response or CloudPlanResponse(items=[], success=False, error="not configured")
        self.requests: list[PlannerRequest] = []

    async def generate_itinerary(self, request: PlannerRequest, trip_id: str, day_id: str) -> CloudPlanResponse:
        self.requests.append(request)
        return self.response


def make_item(
    item_id:  str,
    title:    str,
    start:    str,
    end:      str,
    type:     str = "activity",
    day_id:   str = DAY_ID,
    date:     str = DAY_DATE,
    place_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> TripItem:
    return TripItem(
        id=item_id,
        trip_id=TRIP_ID,
        day_id=day_id,
        type=type,
        title=title,
        start=f"{date}T{start}:00",
        end=f"{date}T{end}:00",
        place_id=place_id,
        metadata=metadata or {},
    )


def make_place(place_id: str, name: str, area_tags=(), near=()) -> Place:
    return Place(
        id=place_id,
        name=name,
        city="Tokyo",
        area_tags=list(area_tags),
        near_place_ids=list(near),
    )


@pytest.fixture(autouse=True)
def _no_event_files(monkeypatch):
    monkeypatch.setattr("config.STRUCTURED_LOGS_ENABLED", False)


@pytest.fixture
def events() -> StructuredLogger:
    return StructuredLogger(enabled=False)


@pytest.fixture
def store() -> MemoryKVStore:
    return MemoryKVStore()


@pytest.fixture
def trips(store) -> TripRepository:
    return TripRepository(store)


@pytest.fixture
def chunks(store) -> ChunkRepository:
    return ChunkRepository(store)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def memory(chunks, engine) -> MemoryStore:
    return MemoryStore(chunks, engine)


@pytest.fixture
def network() -> NetworkMonitor:
    monitor = NetworkMonitor()
    monitor.force(True)
    return monitor


async def seed_trip(trips: TripRepository, items: list[TripItem], places: Optional[list[Place]] = None) -> None:
    await trips.save_trip(Trip(id=TRIP_ID, name="Tokyo Spring", start_date=DAY_DATE, end_date="2025-03-16"))
    await trips.save_day_plan(DayPlan(id=DAY_ID, trip_id=TRIP_ID, date=DAY_DATE, day_number=1))
    await trips.save_day_plan(DayPlan(id="day_2", trip_id=TRIP_ID, date="2025-03-16", day_number=2))
    if places:
        await trips.save_places(places)
    if items:
        await trips.upsert_trip_items(items)
