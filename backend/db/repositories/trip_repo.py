"""
db/repositories/trip_repo.py
------------------------------
CRUD for trips, day plans, trip items and places over a KeyValueStore.

Each entity type is one collection key.  Deleting a trip cascades to its
day plans and items; memory chunks are removed separately through
MemoryStore.remove_trip().
"""

from __future__ import annotations

import time
from typing import Optional

from db.kv_store import KeyValueStore
from schemas.itinerary import DayPlan, Place, Trip, TripItem

TRIPS_KEY      = "trips"
DAY_PLANS_KEY  = "day_plans"
TRIP_ITEMS_KEY = "trip_items"
PLACES_KEY     = "places"


def _upsert(rows: list[dict], row: dict) -> list[dict]:
    for idx, existing in enumerate(rows):
        if existing["id"] == row["id"]:
            rows[idx] = row
            return rows
    rows.append(row)
    return rows


class TripRepository:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def _rows(self, key: str) -> list[dict]:
        return await self._store.get(key) or []

    # ── trips ─────────────────────────────────────────────────────────────────

    async def get_trip(self, trip_id: str) -> Optional[Trip]:
        row = next((r for r in await self._rows(TRIPS_KEY) if r["id"] == trip_id), None)
        return Trip.from_dict(row) if row else None

    async def list_trips(self) -> list[Trip]:
        return [Trip.from_dict(r) for r in await self._rows(TRIPS_KEY)]

    async def save_trip(self, trip: Trip) -> Trip:
        now = time.time()
        trip.created_at = trip.created_at or now
        trip.updated_at = now
        await self._store.set(TRIPS_KEY, _upsert(await self._rows(TRIPS_KEY), trip.to_dict()))
        return trip

    async def delete_trip(self, trip_id: str) -> None:
        trips = [r for r in await self._rows(TRIPS_KEY) if r["id"] != trip_id]
        days = [r for r in await self._rows(DAY_PLANS_KEY) if r["trip_id"] != trip_id]
        items = [r for r in await self._rows(TRIP_ITEMS_KEY) if r["trip_id"] != trip_id]
        await self._store.set(TRIPS_KEY, trips)
        await self._store.set(DAY_PLANS_KEY, days)
        await self._store.set(TRIP_ITEMS_KEY, items)

    # ── day plans ─────────────────────────────────────────────────────────────

    async def get_day_plans(self, trip_id: str) -> list[DayPlan]:
        days = [DayPlan.from_dict(r) for r in await self._rows(DAY_PLANS_KEY) if r["trip_id"] == trip_id]
        return sorted(days, key=lambda d: d.day_number)

    async def get_day_plan(self, day_id: str) -> Optional[DayPlan]:
        row = next((r for r in await self._rows(DAY_PLANS_KEY) if r["id"] == day_id), None)
        return DayPlan.from_dict(row) if row else None

    async def save_day_plan(self, day: DayPlan) -> DayPlan:
        await self._store.set(DAY_PLANS_KEY, _upsert(await self._rows(DAY_PLANS_KEY), day.to_dict()))
        return day

    # ── trip items ────────────────────────────────────────────────────────────

    async def get_trip_items(self, day_id: str) -> list[TripItem]:
        """Items of one day plan."""
        return [TripItem.from_dict(r) for r in await self._rows(TRIP_ITEMS_KEY) if r["day_id"] == day_id]

    async def get_all_trip_items(self, trip_id: str) -> list[TripItem]:
        return [TripItem.from_dict(r) for r in await self._rows(TRIP_ITEMS_KEY) if r["trip_id"] == trip_id]

    async def get_trip_item(self, item_id: str) -> Optional[TripItem]:
        row = next((r for r in await self._rows(TRIP_ITEMS_KEY) if r["id"] == item_id), None)
        return TripItem.from_dict(row) if row else None

    async def upsert_trip_items(self, items: list[TripItem]) -> None:
        rows = await self._rows(TRIP_ITEMS_KEY)
        for item in items:
            rows = _upsert(rows, item.to_dict())
        await self._store.set(TRIP_ITEMS_KEY, rows)

    async def save_trip_item(self, item: TripItem) -> TripItem:
        await self.upsert_trip_items([item])
        return item

    async def delete_trip_item(self, item_id: str) -> None:
        rows = [r for r in await self._rows(TRIP_ITEMS_KEY) if r["id"] != item_id]
        await self._store.set(TRIP_ITEMS_KEY, rows)

    # ── places ────────────────────────────────────────────────────────────────

    async def get_places(self) -> list[Place]:
        return [Place.from_dict(r) for r in await self._rows(PLACES_KEY)]

    async def get_place(self, place_id: str) -> Optional[Place]:
        row = next((r for r in await self._rows(PLACES_KEY) if r["id"] == place_id), None)
        return Place.from_dict(row) if row else None

    async def save_places(self, places: list[Place]) -> None:
        rows = await self._rows(PLACES_KEY)
        for place in places:
            rows = _upsert(rows, place.to_dict())
        await self._store.set(PLACES_KEY, rows)
