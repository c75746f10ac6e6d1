"""
api/routes/trips.py
--------------------
Trip timeline editing.  Every item write keeps the memory index in step.

POST   /v1/trips                    — create a trip with one day plan per date
GET    /v1/trips                    — list trips with day / activity counts
GET    /v1/trips/{trip_id}          — full timeline (days with their items)
DELETE /v1/trips/{trip_id}          — delete trip, days, items and chunks
POST   /v1/trips/{trip_id}/days     — append a day
POST   /v1/trips/days/{day_id}/items — add an item to a day
PATCH  /v1/trips/items/{item_id}    — change an item (re-indexed)
DELETE /v1/trips/items/{item_id}    — delete an item (chunk removed)
POST   /v1/trips/places             — upsert places referenced by items
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.deps import Services, get_services
from modules.errors import RecordNotFoundError
from schemas.itinerary import ItemType, Place

router = APIRouter()


# ── Request schemas ────────────────────────────────────────────────────────────

class CreateTripRequest(BaseModel):
    name:         str = Field(..., min_length=1)
    start_date:   str = Field(..., description="ISO-8601 date YYYY-MM-DD")
    end_date:     str = Field(..., description="ISO-8601 date YYYY-MM-DD")
    home_airport: Optional[str] = None


class AddItemRequest(BaseModel):
    type:     ItemType = ItemType.activity
    title:    str = Field(..., min_length=1)
    start:    str = Field(..., description="ISO-8601 datetime")
    end:      str = Field(..., description="ISO-8601 datetime")
    place_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdateItemRequest(BaseModel):
    day_id:   Optional[str] = None
    type:     Optional[ItemType] = None
    title:    Optional[str] = None
    start:    Optional[str] = None
    end:      Optional[str] = None
    place_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class PlaceIn(BaseModel):
    id:             str
    name:           str
    city:           str
    area_tags:      list[str] = Field(default_factory=list)
    near_place_ids: list[str] = Field(default_factory=list)


# ── Endpoints ──────────────────────────────────────────────────────────────────

@router.post("", summary="Create a trip")
async def create_trip(req: CreateTripRequest, services: Services = Depends(get_services)) -> dict:
    try:
        timeline = await services.timeline.create_trip(req.name, req.start_date, req.end_date, req.home_airport)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return timeline.to_dict()


@router.get("", summary="List trips")
async def list_trips(services: Services = Depends(get_services)) -> dict:
    return {"trips": [s.to_dict() for s in await services.timeline.list_trips()]}


@router.post("/places", summary="Upsert places")
async def save_places(places: list[PlaceIn], services: Services = Depends(get_services)) -> dict:
    await services.trips.save_places([Place(**p.model_dump()) for p in places])
    return {"saved": len(places)}


@router.get("/{trip_id}", summary="Trip timeline")
async def get_timeline(trip_id: str, services: Services = Depends(get_services)) -> dict:
    try:
        timeline = await services.timeline.get_timeline(trip_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return timeline.to_dict()


@router.delete("/{trip_id}", summary="Delete a trip")
async def delete_trip(trip_id: str, services: Services = Depends(get_services)) -> dict:
    try:
        await services.timeline.delete_trip(trip_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"trip_id": trip_id, "deleted": True}


@router.post("/{trip_id}/days", summary="Append a day")
async def add_day(trip_id: str, services: Services = Depends(get_services)) -> dict:
    try:
        day = await services.timeline.add_day(trip_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return day.to_dict()


@router.post("/days/{day_id}/items", summary="Add an item to a day")
async def add_item(day_id: str, req: AddItemRequest, services: Services = Depends(get_services)) -> dict:
    try:
        item = await services.timeline.add_item(
            day_id=day_id,
            type=req.type.value,
            title=req.title,
            start=req.start,
            end=req.end,
            place_id=req.place_id,
            metadata=req.metadata,
        )
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return item.to_dict()


@router.patch("/items/{item_id}", summary="Change an item")
async def update_item(item_id: str, req: UpdateItemRequest, services: Services = Depends(get_services)) -> dict:
    changes = req.model_dump(exclude_unset=True, mode="json")
    try:
        item = await services.timeline.update_item(item_id, changes)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return item.to_dict()


@router.delete("/items/{item_id}", summary="Delete an item")
async def delete_item(item_id: str, services: Services = Depends(get_services)) -> dict:
    try:
        await services.timeline.delete_item(item_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"item_id": item_id, "deleted": True}
