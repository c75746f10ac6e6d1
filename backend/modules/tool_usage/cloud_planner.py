"""
modules/tool_usage/cloud_planner.py
-------------------------------------
Cloud day-plan generator backed by Gemini (see llm.py).

Only non-PII data leaves the device: city, date, time ranges and interests.
The model is asked for a JSON object:

    {"items":     [{"title", "type", "startTime", "endTime", "description"}, ...],
     "knowledge": ["short fact about the city", ...]}

A bare JSON array of items is accepted as well.  Any failure comes back as
``success=False`` with an error string; this adapter never raises.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

import config
import llm
from schemas.itinerary import ItemType, TripItem, new_trip_item
from schemas.planner import CloudPlanResponse, CloudPlanRow, PlannerRequest

logger = logging.getLogger(__name__)

LLMCall = Callable[[str], Awaitable[str]]

_FENCED_RE = re.compile(r"```(?:json)?\s*\n([\s\S]*?)\n\s*```")

_PROMPT = """Create a day itinerary for {city} on {date}.
Available time: {time_ranges}.
{interests}

IMPORTANT: Respond with ONLY a JSON object, no markdown or explanation.
"items": {min_items}-{max_items} entries, each with: title, type (activity|transport|lodging), startTime (HH:mm), endTime (HH:mm), description.
"knowledge": 3-5 short, factual sentences a traveller would want offline about the places in the plan (opening hours, transit tips, etiquette).

Example format:
{{
  "items": [
    {{"title": "Visit Temple", "type": "activity", "startTime": "09:00", "endTime": "11:00", "description": "Explore the historic temple grounds"}},
    {{"title": "Lunch at Local Restaurant", "type": "activity", "startTime": "12:00", "endTime": "13:30", "description": "Try local cuisine"}}
  ],
  "knowledge": ["The temple opens at 08:30 and is free on weekdays."]
}}

Use realistic times inside the available time. Include brief descriptions."""


def _normalize_type(value: str) -> str:
    value = (value or "").lower()
    if value in (ItemType.transport.value, ItemType.lodging.value, ItemType.flight.value):
        return value
    return ItemType.activity.value


def extract_json(text: str) -> Any:
    """Pull the JSON payload out of a model reply (fenced block, object or array)."""
    fenced = _FENCED_RE.search(text)
    if fenced:
        return json.loads(fenced.group(1))
    stripped = text.strip()
    if stripped.startswith(("{", "[")):
        return json.loads(stripped)
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            return json.loads(text[start:end + 1])
    raise ValueError("no JSON found in model response")


class CloudPlannerApi:
    def __init__(self, llm_call: Optional[LLMCall] = None) -> None:
        self._llm_call = llm_call or llm.call_llm

    def build_prompt(self, request: PlannerRequest) -> str:
        time_ranges = ", ".join(f"{r.start} to {r.end}" for r in request.time_ranges)
        interests = f"Focus on: {', '.join(request.interests)}." if request.interests else ""
        return _PROMPT.format(
            city=request.city,
            date=request.date,
            time_ranges=time_ranges or "full day",
            interests=interests,
            min_items=config.CLOUD_ITEMS_MIN,
            max_items=config.CLOUD_ITEMS_MAX,
        )

    async def generate_itinerary(
        self,
        request: PlannerRequest,
        trip_id: str,
        day_id:  str,
    ) -> CloudPlanResponse:
        if self._llm_call is llm.call_llm and not config.GEMINI_API_KEY:
            return CloudPlanResponse(error="Cloud planner API key not configured")

        try:
            text = await self._llm_call(self.build_prompt(request))
        except Exception as exc:
            logger.error("Cloud planner request failed: %s", exc)
            return CloudPlanResponse(error=f"API request failed: {exc}")

        try:
            items, knowledge = self.parse_response(text, trip_id, day_id, request.date)
        except (ValueError, ValidationError) as exc:
            logger.error("Failed to parse cloud planner response: %s", exc)
            return CloudPlanResponse(error=f"Invalid response format from API: {exc}")

        return CloudPlanResponse(items=items, success=True, knowledge_context=knowledge)

    def parse_response(
        self,
        text:    str,
        trip_id: str,
        day_id:  str,
        date:    str,
    ) -> tuple[list[TripItem], list[str]]:
        payload = extract_json(text)
        if isinstance(payload, dict):
            rows = payload.get("items") or []
            knowledge = [str(k) for k in payload.get("knowledge") or [] if str(k).strip()]
        elif isinstance(payload, list):
            rows, knowledge = payload, []
        else:
            raise ValueError("response is neither an object nor an array")
        if not isinstance(rows, list):
            raise ValueError("'items' is not an array")

        items: list[TripItem] = []
        for index, raw in enumerate(rows):
            row = CloudPlanRow.model_validate(raw)
            items.append(new_trip_item(
                trip_id=trip_id,
                day_id=day_id,
                type=_normalize_type(row.type),
                title=row.title or f"Activity {index + 1}",
                start=f"{date}T{row.start_time}:00",
                end=f"{date}T{row.end_time}:00",
                metadata={"description": row.description, "generated_by_cloud": True},
            ))
        return items, knowledge
