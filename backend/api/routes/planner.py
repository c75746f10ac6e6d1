"""
api/routes/planner.py
----------------------
POST /v1/planner/generate — plan a day (cloud when online and the day is empty)
POST /v1/planner/replan   — on-device replanning of an existing day
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.deps import Services, get_services
from modules.errors import CloudPlannerError, ModelNotReadyError
from modules.planning.hybrid_planner import PlanOutcome
from schemas.planner import TimeRange

router = APIRouter()


# ── Request schemas ────────────────────────────────────────────────────────────

class GenerateRequest(BaseModel):
    trip_id:     str
    day_id:      str
    city:        str
    date:        str = Field(..., description="ISO-8601 date YYYY-MM-DD")
    time_ranges: list[TimeRange] = Field(default_factory=list)
    interests:   list[str] = Field(default_factory=list)


class ReplanRequest(BaseModel):
    trip_id:     str
    day_id:      str
    instruction: str = Field(..., min_length=1)


def _ser_outcome(outcome: PlanOutcome) -> dict:
    return {
        "route":           outcome.route,
        "items":           [i.to_dict() for i in outcome.items],
        "reply":           outcome.reply,
        "index_status":    outcome.index_status,
        "indexed_count":   outcome.indexed_count,
        "knowledge_count": outcome.knowledge_count,
    }


# ── Endpoints ──────────────────────────────────────────────────────────────────

@router.post("/generate", summary="Generate a day plan (cloud or on-device)")
async def generate(req: GenerateRequest, services: Services = Depends(get_services)) -> dict:
    try:
        outcome = await services.planner.generate_plan(
            trip_id=req.trip_id,
            day_id=req.day_id,
            city=req.city,
            date=req.date,
            time_ranges=req.time_ranges or None,
            interests=req.interests or None,
        )
    except CloudPlannerError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ModelNotReadyError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return _ser_outcome(outcome)


@router.post("/replan", summary="Adjust an existing day with the on-device model")
async def replan(req: ReplanRequest, services: Services = Depends(get_services)) -> dict:
    try:
        reply = await services.planner.replan_local(req.trip_id, req.day_id, req.instruction)
    except ModelNotReadyError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"trip_id": req.trip_id, "day_id": req.day_id, "reply": reply}


@router.get("/day/{day_id}", summary="Items currently planned for a day")
async def day_items(day_id: str, services: Services = Depends(get_services)) -> dict:
    items = await services.trips.get_trip_items(day_id)
    return {"day_id": day_id, "items": [i.to_dict() for i in items]}
