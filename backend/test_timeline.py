"""
test_timeline.py
────────────────
TimelineService: trips get one day plan per date, and item edits keep the
memory index in step with storage.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from conftest import DAY_ID, TRIP_ID, make_item, make_place, seed_trip
from modules.assistant.timeline import TimelineService
from modules.errors import RecordNotFoundError


@pytest.fixture
def timeline(trips, memory, events) -> TimelineService:
    return TimelineService(trips, memory, events)


def _chunks_for(stored, source_id):
    return [c for c in stored if c.source_id == source_id]


class TestTrips:
    def test_create_trip_makes_one_day_per_date(self, timeline, trips):
        async def run():
            created = await timeline.create_trip("Kyoto", "2025-04-01", "2025-04-03")
            return created, await trips.get_day_plans(created.trip.id)

        created, days = asyncio.run(run())
        assert [d.date for d in days] == ["2025-04-01", "2025-04-02", "2025-04-03"]
        assert [d.day_number for d in days] == [1, 2, 3]
        assert len(created.days) == 3

    def test_create_trip_rejects_reversed_dates(self, timeline):
        with pytest.raises(ValueError):
            asyncio.run(timeline.create_trip("Kyoto", "2025-04-03", "2025-04-01"))
        with pytest.raises(ValueError):
            asyncio.run(timeline.create_trip("Kyoto", "April 1st", "2025-04-03"))

    def test_list_trips_counts(self, timeline, trips):
        async def run():
            await seed_trip(trips, [
                make_item("a1", "Temple", "09:00", "11:00"),
                make_item("f1", "Flight", "18:00", "20:00", type="flight"),
            ])
            return await timeline.list_trips()

        [summary] = asyncio.run(run())
        assert summary.trip.id == TRIP_ID
        assert (summary.day_count, summary.activity_count) == (2, 1)

    def test_timeline_items_sorted_per_day(self, timeline, trips):
        async def run():
            await seed_trip(trips, [
                make_item("a2", "Lunch", "12:00", "13:00"),
                make_item("a1", "Temple", "09:00", "11:00"),
                make_item("b1", "Shrine", "10:00", "11:00", day_id="day_2", date="2025-03-16"),
            ])
            return await timeline.get_timeline(TRIP_ID)

        result = asyncio.run(run())
        assert [d.day.id for d in result.days] == [DAY_ID, "day_2"]
        assert [i.id for i in result.days[0].items] == ["a1", "a2"]
        assert [i.id for i in result.all_items] == ["a1", "a2", "b1"]

    def test_unknown_trip(self, timeline):
        with pytest.raises(RecordNotFoundError):
            asyncio.run(timeline.get_timeline("trip_missing"))

    def test_delete_trip_removes_chunks(self, timeline, trips, memory, chunks):
        async def run():
            await seed_trip(trips, [make_item("a1", "Temple", "09:00", "11:00")])
            await memory.index_items(await trips.get_all_trip_items(TRIP_ID))
            await timeline.delete_trip(TRIP_ID)
            return await trips.get_trip(TRIP_ID), await trips.get_day_plans(TRIP_ID), await chunks.get_chunks(TRIP_ID)

        trip, days, stored = asyncio.run(run())
        assert trip is None
        assert days == []
        assert stored == []


class TestDays:
    def test_add_day_extends_end_date(self, timeline, trips):
        async def run():
            await seed_trip(trips, [])
            day = await timeline.add_day(TRIP_ID)
            return day, await trips.get_trip(TRIP_ID)

        day, trip = asyncio.run(run())
        assert (day.date, day.day_number) == ("2025-03-17", 3)
        assert trip.end_date == "2025-03-17"

    def test_first_day_uses_start_date(self, timeline, trips):
        async def run():
            created = await timeline.create_trip("Kyoto", "2025-04-01", "2025-04-01")
            await trips.delete_trip(created.trip.id)
            await trips.save_trip(created.trip)
            return await timeline.add_day(created.trip.id)

        day = asyncio.run(run())
        assert (day.date, day.day_number) == ("2025-04-01", 1)


class TestItems:
    def test_add_item_is_indexed(self, timeline, trips, chunks):
        async def run():
            await seed_trip(trips, [], [make_place("p1", "Senso-ji", area_tags=["Asakusa"])])
            item = await timeline.add_item(DAY_ID, "activity", "Temple visit", "2025-03-15T09:00:00",
                                           "2025-03-15T11:00:00", place_id="p1")
            return item, await chunks.get_chunks(TRIP_ID)

        item, stored = asyncio.run(run())
        [chunk] = _chunks_for(stored, item.id)
        assert item.trip_id == TRIP_ID
        assert "in Asakusa area" in chunk.text

    def test_add_item_validation(self, timeline, trips):
        asyncio.run(seed_trip(trips, []))
        with pytest.raises(RecordNotFoundError):
            asyncio.run(timeline.add_item("day_missing", "activity", "Tea", "2025-03-15T09:00:00",
                                          "2025-03-15T10:00:00"))
        with pytest.raises(ValueError):
            asyncio.run(timeline.add_item(DAY_ID, "activity", "Tea", "2025-03-15T10:00:00",
                                          "2025-03-15T09:00:00"))

    def test_add_item_kept_when_indexing_fails(self, timeline, trips, chunks, engine):
        engine.fail_on = "Tea ceremony"

        async def run():
            await seed_trip(trips, [])
            item = await timeline.add_item(DAY_ID, "activity", "Tea ceremony", "2025-03-15T14:00:00",
                                           "2025-03-15T15:00:00")
            return item, await trips.get_trip_item(item.id), await chunks.get_chunks(TRIP_ID)

        item, stored_item, stored = asyncio.run(run())
        assert stored_item is not None
        assert _chunks_for(stored, item.id) == []

    def test_update_item_reindexes(self, timeline, trips, memory, chunks):
        async def run():
            await seed_trip(trips, [make_item("a2", "Lunch", "12:00", "13:00")])
            await memory.index_items(await trips.get_all_trip_items(TRIP_ID))
            before = _chunks_for(await chunks.get_chunks(TRIP_ID), "a2")
            item = await timeline.update_item("a2", {"start": "2025-03-15T13:00:00", "end": "2025-03-15T14:00:00"})
            after = _chunks_for(await chunks.get_chunks(TRIP_ID), "a2")
            return before, item, after

        before, item, after = asyncio.run(run())
        assert item.start == "2025-03-15T13:00:00"
        assert len(after) == 1
        assert after[0].id == before[0].id
        assert "from 13:00 to 14:00" in after[0].text

    def test_update_item_rejects_unknown_day(self, timeline, trips):
        asyncio.run(seed_trip(trips, [make_item("a2", "Lunch", "12:00", "13:00")]))
        with pytest.raises(RecordNotFoundError):
            asyncio.run(timeline.update_item("a2", {"day_id": "day_missing"}))

    def test_delete_item_removes_chunk(self, timeline, trips, memory, chunks):
        async def run():
            await seed_trip(trips, [make_item("a1", "Temple", "09:00", "11:00")])
            await memory.index_items(await trips.get_all_trip_items(TRIP_ID))
            await timeline.delete_item("a1")
            return await trips.get_trip_item("a1"), await chunks.get_chunks(TRIP_ID)

        item, stored = asyncio.run(run())
        assert item is None
        assert _chunks_for(stored, "a1") == []

    def test_delete_item_survives_chunk_failure(self, timeline, trips, memory):
        async def run():
            await seed_trip(trips, [make_item("a1", "Temple", "09:00", "11:00")])
            with patch.object(memory, "remove_by_source", side_effect=RuntimeError("store offline")):
                await timeline.delete_item("a1")
            return await trips.get_trip_item("a1")

        assert asyncio.run(run()) is None
