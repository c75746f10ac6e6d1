"""
test_logistics.py
─────────────────
Time-range parsing, logistics graph, free blocks and slot search.
"""

from __future__ import annotations

from datetime import date, datetime

import pytest

from conftest import DAY_ID, make_item, make_place
from modules.assistant.context_assembler import (
    EMPTY_DAY_SENTINEL,
    extract_destination_window,
    extract_target_from_command,
    is_modification_command,
    is_removal_command,
    summarize_day,
)
from modules.planning.logistics_graph import (
    build_logistics_graph,
    compute_free_blocks,
    find_earliest_available_slot,
    get_items_after,
    get_items_before,
    get_related_items,
)
from modules.planning.time_range import at_time, date_range, extract_clock_times, parse_time_range
from schemas.itinerary import parse_iso
from schemas.memory import FreeBlock, LogisticsRelation
from schemas.planner import TimeRange

DAY = date(2025, 3, 15)


def _at(hm: str) -> datetime:
    return at_time(DAY, hm)


# ── time ranges ───────────────────────────────────────────────────────────────

class TestParseTimeRange:
    def test_explicit_pm_range(self):
        r = parse_time_range("between 2pm and 5pm")
        assert (r.start, r.end) == ("14:00", "17:00")

    def test_no_range(self):
        assert parse_time_range("let's do something fun") is None

    def test_minutes_and_twelve_oclock(self):
        assert extract_clock_times("from 9:30 am until 12pm") == ["09:30", "12:00"]
        assert extract_clock_times("12am") == ["00:00"]

    def test_named_period(self):
        r = parse_time_range("anything free in the afternoon?")
        assert (r.start, r.end) == ("12:00", "17:00")

    def test_explicit_times_beat_named_periods(self):
        r = parse_time_range("evening between 6pm and 8pm")
        assert (r.start, r.end) == ("18:00", "20:00")

    def test_start_after_end_not_rejected(self):
        r = parse_time_range("from 5pm to 2pm")
        assert (r.start, r.end) == ("17:00", "14:00")


# ── command heuristics ────────────────────────────────────────────────────────

class TestCommands:
    def test_modification_detection(self):
        assert is_modification_command("cancel my museum visit") is True
        assert is_modification_command("Move dinner to 8pm") is True
        assert is_modification_command("what's for lunch") is False

    def test_removal_detection(self):
        assert is_removal_command("please delete the taxi") is True
        assert is_removal_command("move the taxi to noon") is False

    def test_target_by_title(self):
        items = [make_item("a1", "Senso-ji Temple", "09:00", "11:00"), make_item("a2", "Skytree", "12:00", "13:00")]
        assert extract_target_from_command("move skytree to the evening", items).id == "a2"

    def test_target_by_pattern_fragment(self):
        items = [make_item("a1", "Tsukiji Outer Market", "09:00", "11:00")]
        assert extract_target_from_command("move my market to 3pm", items).id == "a1"
        assert extract_target_from_command("reschedule tsukiji", items).id == "a1"

    def test_no_target(self):
        assert extract_target_from_command("move breakfast to 9am", []) is None

    def test_destination_window_skips_target_title(self):
        market = make_item("a5", "Night Market", "19:00", "21:00")
        assert extract_destination_window("move night market to lunch", market) == TimeRange(start="11:30", end="14:00")
        assert extract_destination_window("move night market to 2pm to 5pm", market) == TimeRange(start="14:00", end="17:00")
        assert extract_destination_window("reschedule night market", market) is None

    def test_destination_window_reads_text_after_to(self):
        lunch = make_item("a2", "Lunch", "12:00", "13:00")
        assert extract_destination_window("move lunch to the afternoon", lunch) == TimeRange(start="12:00", end="17:00")
        tour = make_item("a6", "Morning tour", "08:00", "10:00")
        assert extract_destination_window("change morning tour to the evening", tour) == TimeRange(start="17:00", end="21:00")

    def test_summarize_day(self):
        items = [make_item("a2", "Skytree", "12:00", "13:00"), make_item("a1", "Senso-ji", "09:00", "11:00")]
        assert summarize_day(items) == "09:00-11:00: Senso-ji\n12:00-13:00: Skytree"
        assert summarize_day([]) == EMPTY_DAY_SENTINEL


# ── free blocks ───────────────────────────────────────────────────────────────

class TestFreeBlocks:
    def test_empty_day_is_one_block(self):
        assert compute_free_blocks([], _at("08:00"), _at("22:00")) == [FreeBlock(_at("08:00"), _at("22:00"))]

    def test_empty_without_bounds(self):
        assert compute_free_blocks([]) == []

    def test_fully_booked(self):
        items = [make_item("a1", "All day tour", "07:00", "23:00")]
        assert compute_free_blocks(items, _at("08:00"), _at("22:00")) == []

    def test_gaps_between_items(self):
        items = [
            make_item("a2", "Lunch", "12:00", "13:00"),
            make_item("a1", "Temple", "09:00", "11:00"),
        ]
        blocks = compute_free_blocks(items, _at("08:00"), _at("22:00"))
        assert blocks == [
            FreeBlock(_at("08:00"), _at("09:00")),
            FreeBlock(_at("11:00"), _at("12:00")),
            FreeBlock(_at("13:00"), _at("22:00")),
        ]

    def test_overlapping_and_nested_items(self):
        items = [
            make_item("a1", "Tour", "09:00", "12:00"),
            make_item("a2", "Museum inside tour", "10:00", "11:00"),
            make_item("a3", "Walk", "11:30", "13:00"),
        ]
        blocks = compute_free_blocks(items, _at("09:00"), _at("15:00"))
        assert blocks == [FreeBlock(_at("13:00"), _at("15:00"))]

    def test_gap_clipped_to_day_end(self):
        items = [make_item("a1", "Temple", "09:00", "10:00"), make_item("a2", "Late show", "23:00", "23:30")]
        blocks = compute_free_blocks(items, _at("08:00"), _at("22:00"))
        assert blocks[-1] == FreeBlock(_at("10:00"), _at("22:00"))
        assert all(b.end <= _at("22:00") for b in blocks)


class TestEarliestSlot:
    def test_gap_too_short(self):
        # day bounds 08:00-22:00; only a 60-minute gap at 12:00
        items = [make_item("a1", "Morning", "08:00", "12:00"), make_item("a2", "Afternoon", "13:00", "22:00")]
        assert find_earliest_available_slot(items, DAY_ID, 90) is None

    def test_gap_fits(self):
        items = [make_item("a1", "Morning", "08:00", "12:00"), make_item("a2", "Afternoon", "13:30", "22:00")]
        slot = find_earliest_available_slot(items, DAY_ID, 60)
        assert slot == FreeBlock(_at("12:00"), _at("13:00"))

    def test_day_without_items(self):
        assert find_earliest_available_slot([], DAY_ID, 30) is None
        other_day = [make_item("b1", "Elsewhere", "09:00", "10:00", day_id="day_2")]
        assert find_earliest_available_slot(other_day, DAY_ID, 30) is None

    def test_prefer_afternoon(self):
        items = [make_item("a1", "Temple", "09:00", "10:00")]
        morning = find_earliest_available_slot(items, DAY_ID, 60)
        afternoon = find_earliest_available_slot(items, DAY_ID, 60, prefer_morning=False)
        assert morning.start == _at("10:00")
        assert afternoon == FreeBlock(_at("12:00"), _at("13:00"))

    def test_prefer_afternoon_falls_back_to_morning(self):
        items = [make_item("a1", "Temple", "08:00", "10:00"), make_item("a2", "Busy", "12:00", "22:00")]
        slot = find_earliest_available_slot(items, DAY_ID, 60, prefer_morning=False)
        assert slot == FreeBlock(_at("10:00"), _at("11:00"))


# ── graph ─────────────────────────────────────────────────────────────────────

class TestLogisticsGraph:
    def test_temporal_edges(self):
        items = [
            make_item("a2", "Lunch", "12:00", "13:00"),
            make_item("a1", "Temple", "09:00", "11:00"),
            make_item("b1", "Next day", "09:00", "10:00", day_id="day_2", date="2025-03-16"),
        ]
        graph = build_logistics_graph(items, [])
        assert get_related_items(graph, "a1", LogisticsRelation.BEFORE) == ["a2"]
        assert get_related_items(graph, "a2", LogisticsRelation.AFTER) == ["a1"]
        assert get_related_items(graph, "a2", LogisticsRelation.BEFORE) == ["b1"]
        assert get_related_items(graph, "a1", LogisticsRelation.WITHIN_DAY) == ["a2"]
        assert get_related_items(graph, "a2", LogisticsRelation.WITHIN_DAY) == ["a1"]
        assert get_related_items(graph, "b1", LogisticsRelation.WITHIN_DAY) == []
        assert graph.node_ids == {"a1", "a2", "b1"}

    def test_spatial_edges_are_symmetric(self):
        places = [
            make_place("p1", "Senso-ji", area_tags=["Asakusa"], near=["p2"]),
            make_place("p2", "Skytree", area_tags=["Sumida"]),
            make_place("p3", "Nakamise", area_tags=["Asakusa"]),
        ]
        items = [
            make_item("a1", "Senso-ji", "09:00", "10:00", place_id="p1"),
            make_item("a2", "Skytree", "11:00", "12:00", place_id="p2"),
            make_item("a3", "Nakamise", "13:00", "14:00", place_id="p3"),
            make_item("a4", "Unplaced", "15:00", "16:00", place_id="missing"),
        ]
        graph = build_logistics_graph(items, places)
        assert get_related_items(graph, "a1", LogisticsRelation.NEAR) == ["a2"]
        assert get_related_items(graph, "a2", LogisticsRelation.NEAR) == ["a1"]
        assert get_related_items(graph, "a1", LogisticsRelation.SAME_AREA) == ["a3"]
        assert get_related_items(graph, "a3", LogisticsRelation.SAME_AREA) == ["a1"]
        assert get_related_items(graph, "a4", LogisticsRelation.NEAR) == []

    def test_items_after_and_before(self):
        items = [
            make_item("a1", "Temple", "09:00", "11:00"),
            make_item("a2", "Lunch", "12:00", "13:00"),
            make_item("a3", "Shopping", "14:00", "16:00"),
            make_item("b1", "Other day", "14:00", "15:00", day_id="day_2"),
        ]
        assert [i.id for i in get_items_after(items, DAY_ID, _at("11:30"))] == ["a2", "a3"]
        assert [i.id for i in get_items_before(items, DAY_ID, _at("14:00"))] == ["a2", "a1"]

    @pytest.mark.parametrize("count", [0, 1])
    def test_small_inputs(self, count):
        items = [make_item("a1", "Temple", "09:00", "11:00")][:count]
        graph = build_logistics_graph(items, [])
        assert graph.edges == []


# ── timestamps ────────────────────────────────────────────────────────────────

def _with_offsets():
    flight = make_item("f1", "Flight to Osaka", "12:00", "13:00", type="flight")
    flight.start = "2025-03-15T12:00:00Z"
    flight.end = "2025-03-15T13:00:00+09:00"
    return [make_item("a1", "Temple", "09:00", "11:00"), flight, make_item("a2", "Tea", "14:00", "15:00")]


class TestMixedOffsets:
    def test_parse_iso_keeps_wall_clock(self):
        assert parse_iso("2025-03-15T12:00:00Z") == datetime(2025, 3, 15, 12, 0)
        assert parse_iso("2025-03-15T12:00:00+09:00") == datetime(2025, 3, 15, 12, 0)
        assert parse_iso("2025-03-15T12:00:00").tzinfo is None

    def test_graph_orders_mixed_items(self):
        graph = build_logistics_graph(_with_offsets(), [])
        assert get_related_items(graph, "a1", LogisticsRelation.BEFORE) == ["f1"]
        assert get_related_items(graph, "f1", LogisticsRelation.BEFORE) == ["a2"]

    def test_free_blocks_and_slot_with_mixed_items(self):
        items = _with_offsets()
        blocks = compute_free_blocks(items, _at("08:00"), _at("16:00"))
        assert blocks == [
            FreeBlock(_at("08:00"), _at("09:00")),
            FreeBlock(_at("11:00"), _at("12:00")),
            FreeBlock(_at("13:00"), _at("14:00")),
            FreeBlock(_at("15:00"), _at("16:00")),
        ]
        assert find_earliest_available_slot(items, DAY_ID, 60) == FreeBlock(_at("08:00"), _at("09:00"))

    def test_date_range_inclusive(self):
        assert date_range(DAY, date(2025, 3, 17)) == [DAY, date(2025, 3, 16), date(2025, 3, 17)]
        assert date_range(DAY, DAY) == [DAY]
        assert date_range(date(2025, 3, 17), DAY) == []
