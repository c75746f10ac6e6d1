"""
modules/memory/canonicalize.py
--------------------------------
Deterministic rendering of itinerary records into sentences for embedding.

Examples:
  "Flight from Toronto (YYZ) to Tokyo (HND) on 2025-12-01 departing 10:35 and arriving 15:20"
  "Visit Senso-ji Temple on 2025-12-02 from 10:00 to 12:00 in Asakusa area"

The same (item, place) pair always produces the same string; re-embedding an
unchanged item therefore reproduces the same chunk text.
"""

from __future__ import annotations

from typing import Optional

from schemas.itinerary import DayPlan, ItemType, Place, TripItem


def _hm(item_ts) -> str:
    return item_ts.strftime("%H:%M")


def canonicalize(item: TripItem, place: Optional[Place] = None) -> str:
    """Convert a TripItem (plus its place, if known) into one canonical sentence."""
    start = item.start_dt
    end = item.end_dt
    date_str = start.date().isoformat()
    start_hm = _hm(start)
    end_hm = _hm(end)

    if item.type == ItemType.flight.value:
        return _flight(item, date_str, start_hm, end_hm)
    if item.type == ItemType.lodging.value:
        return _lodging(item, date_str, place)
    if item.type == ItemType.activity.value:
        area = f" in {place.area_tags[0]} area" if place and place.area_tags else ""
        return f"{item.title} on {date_str} from {start_hm} to {end_hm}{area}"
    # transport and unknown types share the generic template
    return f"{item.title} on {date_str} from {start_hm} to {end_hm}"


def _flight(item: TripItem, date_str: str, start_hm: str, end_hm: str) -> str:
    meta = item.metadata or {}
    from_code = meta.get("from_code")
    to_code = meta.get("to_code")
    if from_code and to_code:
        origin = f"{meta['from_city']} ({from_code})" if meta.get("from_city") else from_code
        dest = f"{meta['to_city']} ({to_code})" if meta.get("to_city") else to_code
        return f"Flight from {origin} to {dest} on {date_str} departing {start_hm} and arriving {end_hm}"
    return f"{item.title} on {date_str} departing {start_hm} and arriving {end_hm}"


def _lodging(item: TripItem, date_str: str, place: Optional[Place]) -> str:
    location = f" in {place.city}" if place else ""
    area = f" ({place.area_tags[0]} area)" if place and place.area_tags else ""
    return f"Stay at {item.title}{location}{area} on {date_str}"


def canonicalize_day_summary(day: DayPlan, items: list[TripItem]) -> str:
    """One-line summary of a day's activities, used for day_summary chunks."""
    activities = ", ".join(i.title for i in items if i.type == ItemType.activity.value)
    if activities:
        return f"Day {day.day_number} ({day.date}): {activities}"
    return f"Day {day.day_number} on {day.date}"
