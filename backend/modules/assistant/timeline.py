"""
modules/assistant/timeline.py
-----------------------------
Trip and timeline editing that keeps the memory index in step with storage.

Every write goes to the TripRepository first.  The matching MemoryStore call
(index, re-index, remove) follows; when it fails the storage change stands,
the failure is logged, and the item stays stale in memory until its next
re-index.

Deleting a whole trip is the exception: its chunks are removed in the same
call and a failure there propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Optional

from db.repositories.trip_repo import TripRepository
from modules.errors import RecordNotFoundError
from modules.memory.memory_store import MemoryStore
from modules.observability.logger import StructuredLogger
from modules.planning.time_range import date_range
from schemas.itinerary import DayPlan, ItemType, Trip, TripItem, new_id, new_trip_item, parse_iso

logger = logging.getLogger(__name__)


@dataclass
class TripSummary:
    trip:           Trip
    day_count:      int
    activity_count: int

    def to_dict(self) -> dict:
        return {**self.trip.to_dict(), "day_count": self.day_count, "activity_count": self.activity_count}


@dataclass
class TimelineDay:
    day:   DayPlan
    items: list[TripItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {**self.day.to_dict(), "items": [i.to_dict() for i in self.items]}


@dataclass
class Timeline:
    trip: Trip
    days: list[TimelineDay] = field(default_factory=list)

    @property
    def all_items(self) -> list[TripItem]:
        return [item for day in self.days for item in day.items]

    def to_dict(self) -> dict:
        return {"trip": self.trip.to_dict(), "days": [d.to_dict() for d in self.days]}


def _parse_date(value: str, label: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label} must be an ISO date YYYY-MM-DD, got {value!r}") from exc


def _check_window(start: str, end: str) -> None:
    try:
        start_dt, end_dt = parse_iso(start), parse_iso(end)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"start and end must be ISO datetimes, got {start!r} / {end!r}") from exc
    if end_dt < start_dt:
        raise ValueError("end must not be before start")


class TimelineService:
    def __init__(
        self,
        trips:  TripRepository,
        memory: MemoryStore,
        events: Optional[StructuredLogger] = None,
    ) -> None:
        self._trips = trips
        self._memory = memory
        self._events = events or StructuredLogger()

    # ── trips ─────────────────────────────────────────────────────────────────

    async def create_trip(
        self,
        name:         str,
        start_date:   str,
        end_date:     str,
        home_airport: Optional[str] = None,
    ) -> Timeline:
        """Save the trip and one day plan per calendar date, numbered from 1."""
        if not name.strip():
            raise ValueError("trip name is empty")
        first = _parse_date(start_date, "start_date")
        last = _parse_date(end_date, "end_date")
        if last < first:
            raise ValueError("end_date must not be before start_date")

        trip = await self._trips.save_trip(Trip(
            id=new_id("trip"),
            name=name.strip(),
            start_date=first.isoformat(),
            end_date=last.isoformat(),
            home_airport=home_airport,
        ))
        days = []
        for number, day in enumerate(date_range(first, last), start=1):
            days.append(TimelineDay(await self._trips.save_day_plan(
                DayPlan(id=new_id("day"), trip_id=trip.id, date=day.isoformat(), day_number=number)
            )))
        await self._events.alog(trip.id, "trip_created", {"days": len(days)})
        return Timeline(trip=trip, days=days)

    async def list_trips(self) -> list[TripSummary]:
        summaries = []
        for trip in await self._trips.list_trips():
            days = await self._trips.get_day_plans(trip.id)
            items = await self._trips.get_all_trip_items(trip.id)
            activities = sum(1 for i in items if i.type == ItemType.activity.value)
            summaries.append(TripSummary(trip=trip, day_count=len(days), activity_count=activities))
        return sorted(summaries, key=lambda s: s.trip.start_date)

    async def get_timeline(self, trip_id: str) -> Timeline:
        trip = await self._trips.get_trip(trip_id)
        if trip is None:
            raise RecordNotFoundError(f"Trip '{trip_id}' not found.")
        days = []
        for day in await self._trips.get_day_plans(trip_id):
            items = await self._trips.get_trip_items(day.id)
            days.append(TimelineDay(day, sorted(items, key=lambda i: i.start_dt)))
        return Timeline(trip=trip, days=days)

    async def delete_trip(self, trip_id: str) -> None:
        if await self._trips.get_trip(trip_id) is None:
            raise RecordNotFoundError(f"Trip '{trip_id}' not found.")
        await self._trips.delete_trip(trip_id)
        await self._memory.remove_trip(trip_id)
        await self._events.alog(trip_id, "trip_deleted", {})

    # ── days ──────────────────────────────────────────────────────────────────

    async def add_day(self, trip_id: str) -> DayPlan:
        """
        Append a day after the last one (or on the start date for an empty trip).

        The trip's end date moves forward when the new day lies beyond it.
        """
        trip = await self._trips.get_trip(trip_id)
        if trip is None:
            raise RecordNotFoundError(f"Trip '{trip_id}' not found.")
        days = await self._trips.get_day_plans(trip_id)
        if days:
            new_date = date.fromisoformat(days[-1].date) + timedelta(days=1)
        else:
            new_date = date.fromisoformat(trip.start_date)

        day = await self._trips.save_day_plan(DayPlan(
            id=new_id("day"), trip_id=trip_id, date=new_date.isoformat(), day_number=len(days) + 1,
        ))
        if day.date > trip.end_date:
            trip.end_date = day.date
            await self._trips.save_trip(trip)
        await self._events.alog(trip_id, "day_added", day.to_dict())
        return day

    # ── items ─────────────────────────────────────────────────────────────────

    async def add_item(
        self,
        day_id:   str,
        type:     str,
        title:    str,
        start:    str,
        end:      str,
        place_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> TripItem:
        day = await self._trips.get_day_plan(day_id)
        if day is None:
            raise RecordNotFoundError(f"Day plan '{day_id}' not found.")
        if not title.strip():
            raise ValueError("item title is empty")
        _check_window(start, end)

        item = await self._trips.save_trip_item(new_trip_item(
            trip_id=day.trip_id,
            day_id=day.id,
            type=type,
            title=title.strip(),
            start=start,
            end=end,
            place_id=place_id,
            metadata=metadata,
        ))
        try:
            place = await self._trips.get_place(place_id) if place_id else None
            await self._memory.index_item(item, place)
        except Exception as exc:
            logger.warning("Indexing new item %s failed: %s", item.id, exc)
        await self._events.alog(day.trip_id, "item_added", {"item_id": item.id, "day_id": day.id})
        return item

    async def update_item(self, item_id: str, changes: dict[str, Any]) -> TripItem:
        """Apply field changes to a stored item; ``id`` and ``trip_id`` are fixed."""
        item = await self._trips.get_trip_item(item_id)
        if item is None:
            raise RecordNotFoundError(f"Trip item '{item_id}' not found.")

        for name in ("day_id", "type", "title", "start", "end", "place_id", "metadata"):
            if name in changes:
                setattr(item, name, changes[name])
        if not item.title.strip():
            raise ValueError("item title is empty")
        _check_window(item.start, item.end)
        if "day_id" in changes:
            day = await self._trips.get_day_plan(item.day_id)
            if day is None or day.trip_id != item.trip_id:
                raise RecordNotFoundError(f"Day plan '{item.day_id}' not found in trip '{item.trip_id}'.")

        await self._trips.save_trip_item(item)
        try:
            place = await self._trips.get_place(item.place_id) if item.place_id else None
            await self._memory.reindex_item(item, place)
        except Exception as exc:
            logger.warning("Re-index after update failed for %s: %s", item.id, exc)
        await self._events.alog(item.trip_id, "item_updated", {"item_id": item.id, "fields": sorted(changes)})
        return item

    async def delete_item(self, item_id: str) -> None:
        item = await self._trips.get_trip_item(item_id)
        if item is None:
            raise RecordNotFoundError(f"Trip item '{item_id}' not found.")
        await self._trips.delete_trip_item(item_id)
        try:
            await self._memory.remove_by_source(item_id)
        except Exception as exc:
            logger.warning("Chunk removal after delete failed for %s: %s", item_id, exc)
        await self._events.alog(item.trip_id, "item_deleted", {"item_id": item_id})
