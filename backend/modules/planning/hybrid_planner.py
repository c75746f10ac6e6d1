"""
modules/planning/hybrid_planner.py
------------------------------------
HybridPlanningRouter — cloud generation vs on-device replanning.

Routing rule
────────────
  online AND the day has no items   → cloud planner generates a fresh day
  anything else                     → on-device engine, given a natural
                                      language replanning instruction

Cloud path
──────────
  1. Non-success response or empty item list → CloudPlannerError, nothing saved.
  2. Items are saved.
  3. If the on-device model is downloaded: each item is indexed (failures are
     logged, saved items stay) and knowledge chunks are indexed.
     Otherwise indexing is DEFERRED, which is not a failure: the items get
     indexed the next time the trip is re-indexed with the model available.

Local path
──────────
  Fails fast with ModelNotReadyError when the model is not downloaded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import config
from db.repositories.trip_repo import TripRepository
from modules.assistant.context_assembler import summarize_day
from modules.errors import CloudPlannerError, ModelNotReadyError
from modules.memory.memory_store import MemoryStore
from modules.observability.logger import StructuredLogger
from modules.tool_usage.engine import (
    CancellationToken,
    ChatMessage,
    ModelEngine,
    TokenCallback,
)
from schemas.itinerary import TripItem
from schemas.planner import CloudPlanResponse, PlannerRequest, TimeRange

logger = logging.getLogger(__name__)

ROUTE_CLOUD = "cloud"
ROUTE_LOCAL = "local"

INDEX_DONE     = "indexed"
INDEX_DEFERRED = "deferred"
INDEX_NONE     = "none"


class CloudPlanner(Protocol):
    async def generate_itinerary(self, request: PlannerRequest, trip_id: str, day_id: str) -> CloudPlanResponse: ...


class Connectivity(Protocol):
    async def is_online(self) -> bool: ...


@dataclass
class PlanOutcome:
    route:          str                      # "cloud" | "local"
    items:          list[TripItem] = field(default_factory=list)
    reply:          str = ""                 # local engine's answer
    index_status:   str = INDEX_NONE         # "indexed" | "deferred" | "none"
    indexed_count:  int = 0
    knowledge_count: int = 0


def build_local_plan_instruction(
    city:        str,
    date:        str,
    time_ranges: Optional[list[TimeRange]] = None,
    interests:   Optional[list[str]] = None,
) -> str:
    time_str = ", ".join(f"{r.start} to {r.end}" for r in time_ranges) if time_ranges else "full day"
    interests_str = ", ".join(interests) if interests else "general sightseeing"
    return f"Create a day plan for {city} on {date} during {time_str}. Focus on: {interests_str}."


def build_local_replan_prompt(items: list[TripItem], instruction: str) -> str:
    return f"""You are a travel planning assistant. Help adjust the following schedule based on the user's request.

CURRENT SCHEDULE:
{summarize_day(items)}

USER REQUEST: {instruction}

Provide a brief response explaining the change. Be specific about times.
Only refer to activities listed in the schedule or requested by the user."""


class HybridPlanningRouter:
    def __init__(
        self,
        cloud:   CloudPlanner,
        trips:   TripRepository,
        memory:  MemoryStore,
        engine:  ModelEngine,
        network: Connectivity,
        events:  Optional[StructuredLogger] = None,
    ) -> None:
        self._cloud = cloud
        self._trips = trips
        self._memory = memory
        self._engine = engine
        self._network = network
        self._events = events or StructuredLogger()

    async def choose_route(self, day_id: str) -> str:
        existing = await self._trips.get_trip_items(day_id)
        online = await self._network.is_online()
        return ROUTE_CLOUD if (online and not existing) else ROUTE_LOCAL

    async def generate_plan(
        self,
        trip_id:     str,
        day_id:      str,
        city:        str,
        date:        str,
        time_ranges: Optional[list[TimeRange]] = None,
        interests:   Optional[list[str]] = None,
    ) -> PlanOutcome:
        route = await self.choose_route(day_id)
        await self._events.alog(trip_id, "plan_routed", {"day_id": day_id, "route": route})

        if route == ROUTE_CLOUD:
            return await self._generate_cloud(trip_id, day_id, city, date, time_ranges, interests)

        instruction = build_local_plan_instruction(city, date, time_ranges, interests)
        reply = await self.replan_local(trip_id, day_id, instruction)
        items = await self._trips.get_trip_items(day_id)
        return PlanOutcome(route=ROUTE_LOCAL, items=items, reply=reply)

    async def _generate_cloud(
        self,
        trip_id:     str,
        day_id:      str,
        city:        str,
        date:        str,
        time_ranges: Optional[list[TimeRange]],
        interests:   Optional[list[str]],
    ) -> PlanOutcome:
        request = PlannerRequest(
            city=city,
            date=date,
            time_ranges=time_ranges or [TimeRange(start=config.DEFAULT_PLAN_START, end=config.DEFAULT_PLAN_END)],
            interests=interests or [],
        )
        response = await self._cloud.generate_itinerary(request, trip_id, day_id)
        if not response.success:
            raise CloudPlannerError(response.error or "Failed to generate cloud plan")
        if not response.items:
            raise CloudPlannerError("Cloud planner returned no items")

        await self._trips.upsert_trip_items(response.items)
        logger.info("Saved %d cloud items for day %s", len(response.items), day_id)
        outcome = PlanOutcome(route=ROUTE_CLOUD, items=response.items)

        if not self._engine.state().is_downloaded:
            logger.info(
                "Indexing deferred for day %s: on-device model not downloaded (%d items, %d knowledge chunks)",
                day_id, len(response.items), len(response.knowledge_context),
            )
            outcome.index_status = INDEX_DEFERRED
            await self._events.alog(trip_id, "indexing_deferred", {"day_id": day_id, "items": len(response.items)})
            return outcome

        for item in response.items:
            try:
                place = await self._trips.get_place(item.place_id) if item.place_id else None
                await self._memory.index_item(item, place)
                outcome.indexed_count += 1
            except Exception as exc:
                logger.warning("Failed to index item %s: %s", item.id, exc)

        if response.knowledge_context:
            indexed = await self._memory.index_knowledge(trip_id, response.knowledge_context)
            outcome.knowledge_count = len(indexed)
            logger.info("Indexed %d knowledge chunks for trip %s", len(indexed), trip_id)

        outcome.index_status = INDEX_DONE
        await self._events.alog(trip_id, "cloud_plan_indexed", {
            "day_id":    day_id,
            "items":     outcome.indexed_count,
            "knowledge": outcome.knowledge_count,
        })
        return outcome

    async def replan_local(
        self,
        trip_id:     str,
        day_id:      str,
        instruction: str,
        on_token:    Optional[TokenCallback] = None,
        cancel:      Optional[CancellationToken] = None,
    ) -> str:
        if not self._engine.state().is_downloaded:
            raise ModelNotReadyError()

        items = await self._trips.get_trip_items(day_id)
        result = await self._engine.complete(
            [
                ChatMessage("system", build_local_replan_prompt(items, instruction)),
                ChatMessage("user", instruction),
            ],
            on_token=on_token,
            cancel=cancel,
        )
        await self._events.alog(trip_id, "local_replan", {"day_id": day_id, "tokens": result.total_tokens})
        return result.response
