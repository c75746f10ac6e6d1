"""
schemas/itinerary.py
--------------------
Dataclass definitions for the itinerary records Trip Brain reasons over.

Timestamps are kept as ISO-8601 strings (the form they are stored and
exchanged in); ``start_dt`` / ``end_dt`` parse them on demand.  An item's
calendar date and clock times are always read from its own wall clock;
no timezone conversion is applied.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional


class ItemType(str, Enum):
    flight    = "flight"
    lodging   = "lodging"
    activity  = "activity"
    transport = "transport"


def parse_iso(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into a naive wall-clock datetime.

    Any offset (including a trailing ``Z``) is dropped, not converted, so
    items stored with and without offsets sort together.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value).replace(tzinfo=None)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


@dataclass
class Trip:
    id:           str
    name:         str
    start_date:   str            # YYYY-MM-DD
    end_date:     str            # YYYY-MM-DD
    home_airport: Optional[str] = None
    created_at:   float = 0.0
    updated_at:   float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Trip":
        return cls(**data)


@dataclass
class DayPlan:
    """One calendar day of a trip."""
    id:         str
    trip_id:    str
    date:       str              # YYYY-MM-DD
    day_number: int

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DayPlan":
        return cls(**data)


@dataclass
class TripItem:
    """
    A single dated entry of a trip: flight, lodging, activity or transport.

    ``type`` is stored as a plain string so that unknown types coming from
    storage or the cloud planner survive a round trip; canonicalization
    falls back to a generic template for them.
    """
    id:       str
    trip_id:  str
    day_id:   str
    type:     str
    title:    str
    start:    str                # ISO datetime
    end:      str                # ISO datetime
    place_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def start_dt(self) -> datetime:
        return parse_iso(self.start)

    @property
    def end_dt(self) -> datetime:
        return parse_iso(self.end)

    @property
    def day_date(self) -> date:
        return self.start_dt.date()

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TripItem":
        return cls(
            id=data["id"],
            trip_id=data["trip_id"],
            day_id=data["day_id"],
            type=data.get("type", ItemType.activity.value),
            title=data.get("title", ""),
            start=data["start"],
            end=data["end"],
            place_id=data.get("place_id"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Place:
    """
    A location referenced by trip items.

    ``near_place_ids`` is one-directional: A listing B does not imply B lists A.
    """
    id:             str
    name:           str
    city:           str
    area_tags:      list[str] = field(default_factory=list)
    near_place_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Place":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            city=data.get("city", ""),
            area_tags=list(data.get("area_tags") or []),
            near_place_ids=list(data.get("near_place_ids") or []),
        )


def new_trip_item(
    trip_id:  str,
    day_id:   str,
    type:     str,
    title:    str,
    start:    str,
    end:      str,
    place_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> TripItem:
    """Create a TripItem with a fresh id."""
    return TripItem(
        id=new_id("item"),
        trip_id=trip_id,
        day_id=day_id,
        type=type,
        title=title,
        start=start,
        end=end,
        place_id=place_id,
        metadata=metadata or {},
    )
