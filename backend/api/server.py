"""
api/server.py
-------------
FastAPI application entry point.

Run dev server:
    cd backend
    uvicorn api.server:app --reload --port 8000

Endpoints:
    GET  /v1/health
    POST /v1/brain/ask
    POST /v1/brain/pending/apply
    POST /v1/brain/pending/dismiss
    GET  /v1/brain/status/{trip_id}
    POST /v1/brain/model/download
    POST /v1/planner/generate
    POST /v1/planner/replan
    GET  /v1/planner/day/{day_id}
    POST   /v1/trips
    GET    /v1/trips
    GET    /v1/trips/{trip_id}
    DELETE /v1/trips/{trip_id}
    POST   /v1/trips/{trip_id}/days
    POST   /v1/trips/days/{day_id}/items
    PATCH  /v1/trips/items/{item_id}
    DELETE /v1/trips/items/{item_id}
    POST   /v1/trips/places
"""
from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import brain, health, planner, trips
from db.redis_client import close_redis

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(
    title="Trip Brain API",
    version="1.0.0",
    description=(
        "Itinerary assistant reasoning layer: semantic memory over trip items, "
        "grounded Q&A, confirmed schedule edits and hybrid cloud / on-device planning."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# Allow the mobile / web clients (any origin during development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router,   prefix="/v1",         tags=["Health"])
app.include_router(brain.router,    prefix="/v1/brain",   tags=["Brain"])
app.include_router(planner.router,  prefix="/v1/planner", tags=["Planner"])
app.include_router(trips.router,    prefix="/v1/trips",   tags=["Trips"])


@app.on_event("shutdown")
async def _shutdown() -> None:
    await close_redis()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
