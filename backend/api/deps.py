"""
api/deps.py
-----------
Service wiring for the HTTP layer.

Everything is built once, on first use, from config.py:

  STORAGE_BACKEND=memory  → MemoryKVStore (process-local, lost on restart)
  STORAGE_BACKEND=redis   → RedisKVStore over db.redis_client.get_redis()

Brain sessions are kept in-process, keyed by session_id.  Tests swap the
whole bundle with app.dependency_overrides[get_services].
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from fastapi import HTTPException

import config
from db.kv_store import KeyValueStore, MemoryKVStore, RedisKVStore
from db.redis_client import get_redis
from db.repositories.chunk_repo import ChunkRepository
from db.repositories.trip_repo import TripRepository
from modules.assistant.timeline import TimelineService
from modules.assistant.trip_brain import BrainSession, TripBrain
from modules.memory.memory_store import MemoryStore
from modules.observability.logger import StructuredLogger
from modules.planning.hybrid_planner import CloudPlanner, Connectivity, HybridPlanningRouter
from modules.tool_usage.cloud_planner import CloudPlannerApi
from modules.tool_usage.engine import ModelEngine
from modules.tool_usage.network_monitor import NetworkMonitor
from modules.tool_usage.on_device_engine import OnDeviceEngine

logger = logging.getLogger(__name__)


@dataclass
class Services:
    trips:    TripRepository
    memory:   MemoryStore
    engine:   ModelEngine
    brain:    TripBrain
    planner:  HybridPlanningRouter
    timeline: TimelineService
    sessions: dict[str, BrainSession] = field(default_factory=dict)

    def get_session(self, session_id: str) -> BrainSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found.")
        return session

    def open_session(self, trip_id: str, session_id: Optional[str] = None) -> BrainSession:
        if session_id:
            session = self.get_session(session_id)
            if session.trip_id != trip_id:
                raise HTTPException(
                    status_code=409,
                    detail=f"Session '{session_id}' belongs to trip '{session.trip_id}'.",
                )
            return session
        session = BrainSession(trip_id=trip_id)
        self.sessions[session.id] = session
        return session


def build_services(
    store:   KeyValueStore,
    engine:  ModelEngine,
    cloud:   CloudPlanner,
    network: Connectivity,
    events:  Optional[StructuredLogger] = None,
) -> Services:
    events = events or StructuredLogger()
    trips = TripRepository(store)
    memory = MemoryStore(ChunkRepository(store), engine)
    return Services(
        trips=trips,
        memory=memory,
        engine=engine,
        brain=TripBrain(trips, memory, engine, events),
        planner=HybridPlanningRouter(cloud, trips, memory, engine, network, events),
        timeline=TimelineService(trips, memory, events),
    )


def _default_store() -> KeyValueStore:
    if config.STORAGE_BACKEND == "redis":
        logger.info("Using Redis storage at %s:%s", config.REDIS_HOST, config.REDIS_PORT)
        return RedisKVStore(get_redis(), prefix=config.STORAGE_KEY_PREFIX)
    return MemoryKVStore()


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services(
            store=_default_store(),
            engine=OnDeviceEngine(),
            cloud=CloudPlannerApi(),
            network=NetworkMonitor(),
        )
    return _services
