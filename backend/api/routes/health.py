"""
api/routes/health.py
--------------------
Health-check endpoint — used by load balancers, Docker health probes, etc.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

import config
from api.deps import Services, get_services

router = APIRouter()


@router.get("/health", summary="Health check")
def health(services: Services = Depends(get_services)) -> dict:
    """Returns 200 OK when the service is running, with the model readiness flag."""
    return {
        "status":       "ok",
        "service":      "tripbrain-backend",
        "storage":      config.STORAGE_BACKEND,
        "model_ready":  services.engine.state().is_ready,
    }
