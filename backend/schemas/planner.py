"""
schemas/planner.py
------------------
Request / response shapes exchanged with the day planners.

The cloud planner's raw rows are validated with pydantic before they are
turned into TripItems, so malformed model output fails in one place.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from schemas.itinerary import TripItem

_HM_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?$")


def normalize_hm(value: str) -> str:
    """'9' → '09:00', '9:5' is rejected, '14:30' → '14:30'."""
    match = _HM_RE.match(value.strip())
    if not match:
        raise ValueError(f"not a HH:mm time: {value!r}")
    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    if hours > 23 or minutes > 59:
        raise ValueError(f"time out of range: {value!r}")
    return f"{hours:02d}:{minutes:02d}"


class TimeRange(BaseModel):
    start: str   # HH:mm
    end:   str   # HH:mm

    @field_validator("start", "end")
    @classmethod
    def _hm(cls, v: str) -> str:
        return normalize_hm(v)


class PlannerRequest(BaseModel):
    """Non-PII request sent to the cloud planner."""
    city:        str
    date:        str = Field(..., description="ISO-8601 date YYYY-MM-DD")
    time_ranges: List[TimeRange] = Field(default_factory=list)
    interests:   List[str] = Field(default_factory=list)


class CloudPlanRow(BaseModel):
    """One activity row as produced by the cloud model."""
    title:       str = ""
    type:        str = "activity"
    start_time:  str = Field(..., alias="startTime")
    end_time:    str = Field(..., alias="endTime")
    description: Optional[str] = None

    model_config = {"populate_by_name": True}

    @field_validator("start_time", "end_time")
    @classmethod
    def _hm(cls, v: str) -> str:
        return normalize_hm(str(v))


@dataclass
class CloudPlanResponse:
    items:             list[TripItem] = field(default_factory=list)
    success:           bool = False
    error:             Optional[str] = None
    knowledge_context: list[str] = field(default_factory=list)
