"""
api/routes/brain.py
--------------------
Trip Brain conversation endpoints.

Flow:
  1. POST /v1/brain/ask             → question or modification command;
                                      omit session_id to open a new session
  2. POST /v1/brain/pending/apply   → confirm the proposed change
     POST /v1/brain/pending/dismiss → decline it
  3. GET  /v1/brain/status/{trip_id} → engine state + knowledge base counts
     POST /v1/brain/model/download  → load the on-device model
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.deps import Services, get_services
from modules.assistant.trip_brain import AskResult, BrainSession, PendingAction
from modules.errors import (
    GenerationCancelledError,
    ModelNotReadyError,
    NoPendingActionError,
    PendingActionConflictError,
)

router = APIRouter()


# ── Request schemas ────────────────────────────────────────────────────────────

class AskRequest(BaseModel):
    trip_id:    str
    question:   str = Field(..., min_length=1)
    session_id: Optional[str] = None
    day_id:     Optional[str] = None       # day the question is about, if known


class PendingRequest(BaseModel):
    session_id: str


# ── Helpers ────────────────────────────────────────────────────────────────────

def _ser_pending(action: Optional[PendingAction]) -> Optional[dict]:
    return action.to_dict() if action is not None else None


def _ser_session(session: BrainSession) -> dict:
    return {
        "session_id": session.id,
        "trip_id":    session.trip_id,
        "messages":   [m.to_dict() for m in session.messages],
        "pending":    _ser_pending(session.pending),
    }


def _ser_ask(session: BrainSession, result: AskResult) -> dict:
    modification = None
    if result.modification is not None:
        modification = {
            "status":  result.modification.status.value,
            "message": result.modification.message,
        }
    return {
        **_ser_session(session),
        "reply":        result.reply,
        "modification": modification,
    }


# ── Endpoints ──────────────────────────────────────────────────────────────────

@router.post("/ask", summary="Ask a question or request a schedule change")
async def ask(req: AskRequest, services: Services = Depends(get_services)) -> dict:
    session = services.open_session(req.trip_id, req.session_id)
    try:
        result = await services.brain.ask(session, req.question, day_id=req.day_id)
    except ModelNotReadyError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except PendingActionConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except GenerationCancelledError as exc:
        raise HTTPException(status_code=499, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _ser_ask(session, result)


@router.post("/pending/apply", summary="Apply the pending schedule change")
async def apply_pending(req: PendingRequest, services: Services = Depends(get_services)) -> dict:
    session = services.get_session(req.session_id)
    try:
        action = await services.brain.apply_pending(session)
    except NoPendingActionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {**_ser_session(session), "action": _ser_pending(action)}


@router.post("/pending/dismiss", summary="Dismiss the pending schedule change")
async def dismiss_pending(req: PendingRequest, services: Services = Depends(get_services)) -> dict:
    session = services.get_session(req.session_id)
    try:
        action = await services.brain.dismiss_pending(session)
    except NoPendingActionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {**_ser_session(session), "action": _ser_pending(action)}


@router.get("/status/{trip_id}", summary="Engine state and knowledge base size for a trip")
async def status(trip_id: str, services: Services = Depends(get_services)) -> dict:
    state = services.engine.state()
    kb = await services.memory.knowledge_base_status(trip_id)
    return {
        "trip_id": trip_id,
        "engine": {
            "is_downloaded":     state.is_downloaded,
            "is_downloading":    state.is_downloading,
            "download_progress": state.download_progress,
            "error":             state.error,
        },
        "knowledge_base": {
            "item_count":      kb.item_count,
            "knowledge_count": kb.knowledge_count,
            "total_count":     kb.total_count,
        },
    }


@router.post("/model/download", summary="Download and load the on-device model")
async def download_model(services: Services = Depends(get_services)) -> dict:
    download = getattr(services.engine, "download", None)
    if download is None:
        raise HTTPException(status_code=501, detail="Engine does not support downloading.")
    try:
        await download()
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Model download failed: {exc}") from exc
    return {"is_downloaded": services.engine.state().is_downloaded}
