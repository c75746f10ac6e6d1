"""
modules/planning/logistics_graph.py
-------------------------------------
Temporal / spatial relations between trip items, and free-time search.

All functions are pure: they take items (and places) and return derived
values.  Nothing here is persisted.

build_logistics_graph()
  Temporal pass  O(n log n): sort by start, link each adjacent pair
                 BEFORE (earlier → later) / AFTER (later → earlier), plus
                 WITHIN_DAY both ways when they share a calendar date.
  Spatial pass   O(n²): for every pair whose places resolve, NEAR both ways
                 if either place lists the other as near, SAME_AREA both ways
                 if their area tags intersect.  Fine for one trip; a spatial
                 index keyed by area tag / near-list would be needed for
                 hundreds of items.

compute_free_blocks()
  Cursor walk over items sorted by start.  The cursor only moves forward,
  so overlapping and nested items are tolerated.

find_earliest_available_slot()
  Day bounds DAY_START_HOUR–DAY_END_HOUR on the day's date; first free block
  that fits, cut to exactly the requested duration.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

import config
from modules.planning.time_range import at_time
from schemas.itinerary import Place, TripItem
from schemas.memory import FreeBlock, LogisticsGraph, LogisticsRelation

logger = logging.getLogger(__name__)


def _by_start(items: list[TripItem]) -> list[TripItem]:
    return sorted(items, key=lambda i: i.start_dt)


# ── Graph ─────────────────────────────────────────────────────────────────────

def build_logistics_graph(items: list[TripItem], places: list[Place]) -> LogisticsGraph:
    graph = LogisticsGraph(node_ids={item.id for item in items})
    place_map = {p.id: p for p in places}

    ordered = _by_start(items)
    for current, nxt in zip(ordered, ordered[1:]):
        graph.add(current.id, nxt.id, LogisticsRelation.BEFORE)
        graph.add(nxt.id, current.id, LogisticsRelation.AFTER)
        if current.day_date == nxt.day_date:
            graph.add(current.id, nxt.id, LogisticsRelation.WITHIN_DAY)
            graph.add(nxt.id, current.id, LogisticsRelation.WITHIN_DAY)

    if len(items) > config.SPATIAL_PASS_WARN_NODES:
        logger.warning(
            "Quadratic spatial pass over %d items (threshold %d)",
            len(items), config.SPATIAL_PASS_WARN_NODES,
        )

    for i, item_a in enumerate(items):
        place_a = place_map.get(item_a.place_id) if item_a.place_id else None
        if place_a is None:
            continue
        for item_b in items[i + 1:]:
            place_b = place_map.get(item_b.place_id) if item_b.place_id else None
            if place_b is None:
                continue

            if place_b.id in place_a.near_place_ids or place_a.id in place_b.near_place_ids:
                graph.add(item_a.id, item_b.id, LogisticsRelation.NEAR)
                graph.add(item_b.id, item_a.id, LogisticsRelation.NEAR)

            if set(place_a.area_tags) & set(place_b.area_tags):
                graph.add(item_a.id, item_b.id, LogisticsRelation.SAME_AREA)
                graph.add(item_b.id, item_a.id, LogisticsRelation.SAME_AREA)

    return graph


def get_related_items(graph: LogisticsGraph, item_id: str, relation: LogisticsRelation) -> list[str]:
    return graph.related(item_id, relation)


# ── Day filters ───────────────────────────────────────────────────────────────

def get_items_after(items: list[TripItem], day_id: str, after: datetime) -> list[TripItem]:
    """Items of ``day_id`` starting strictly after ``after``, earliest first."""
    return _by_start([i for i in items if i.day_id == day_id and i.start_dt > after])


def get_items_before(items: list[TripItem], day_id: str, before: datetime) -> list[TripItem]:
    """Items of ``day_id`` ending strictly before ``before``, latest start first."""
    matching = [i for i in items if i.day_id == day_id and i.end_dt < before]
    return sorted(matching, key=lambda i: i.start_dt, reverse=True)


# ── Free time ─────────────────────────────────────────────────────────────────

def compute_free_blocks(
    items:     list[TripItem],
    day_start: Optional[datetime] = None,
    day_end:   Optional[datetime] = None,
) -> list[FreeBlock]:
    if not items:
        if day_start is not None and day_end is not None and day_start < day_end:
            return [FreeBlock(day_start, day_end)]
        return []

    ordered = _by_start(items)
    effective_end = day_end if day_end is not None else max(i.end_dt for i in ordered)
    cursor = day_start if day_start is not None else ordered[0].start_dt

    blocks: list[FreeBlock] = []
    for item in ordered:
        start, end = item.start_dt, item.end_dt
        if start > cursor:
            # gaps are clipped to the day bound when items run past it
            gap_end = min(start, effective_end)
            if gap_end > cursor:
                blocks.append(FreeBlock(cursor, gap_end))
        if end > cursor:
            cursor = end

    if cursor < effective_end:
        blocks.append(FreeBlock(cursor, effective_end))
    return blocks


def find_earliest_available_slot(
    items:            list[TripItem],
    day_id:           str,
    duration_minutes: float,
    prefer_morning:   bool = True,
) -> Optional[FreeBlock]:
    """
    First free slot of ``duration_minutes`` on ``day_id`` within the day bounds.

    prefer_morning=True searches chronologically.  prefer_morning=False tries
    the part of the day from noon on first and only falls back to the
    chronological search when nothing fits there.

    Returns None if the day has no items (its date cannot be inferred) or no
    block is long enough.
    """
    day_items = _by_start([i for i in items if i.day_id == day_id])
    if not day_items:
        return None

    first = day_items[0].start_dt
    day_start = at_time(first.date(), f"{config.DAY_START_HOUR:02d}:00")
    day_end = at_time(first.date(), f"{config.DAY_END_HOUR:02d}:00")
    blocks = compute_free_blocks(day_items, day_start, day_end)
    needed = timedelta(minutes=duration_minutes)

    if not prefer_morning:
        noon = at_time(first.date(), f"{config.NOON_HOUR:02d}:00")
        for block in blocks:
            start = max(block.start, noon)
            if block.end - start >= needed:
                return FreeBlock(start, start + needed)

    for block in blocks:
        if block.end - block.start >= needed:
            return FreeBlock(block.start, block.start + needed)
    return None
