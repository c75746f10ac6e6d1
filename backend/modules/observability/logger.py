"""
Structured event log: append-only JSONL, one file per conversation or trip.

Usage:
    from modules.observability.logger import StructuredLogger

    events = StructuredLogger()
    events.log("sess_abc123", "pending_created", {"item_id": "item_1"})
    await events.alog("sess_abc123", "pending_applied", {"item_id": "item_1"})   # from async code

Files land in  STRUCTURED_LOGS_DIR/<session_id>.jsonl  (default backend/logs).
Set STRUCTURED_LOGS_ENABLED=false to turn the log into a no-op.
"""

from __future__ import annotations

import asyncio
import json
import threading
from datetime import datetime, timezone
from pathlib import Path

import config

_DEFAULT_DIR: Path = Path(__file__).resolve().parents[2] / "logs"


class StructuredLogger:
    """Thread-safe JSONL event writer for Trip Brain decisions."""

    def __init__(self, logs_dir: Path | str | None = None, enabled: bool | None = None) -> None:
        configured = logs_dir or config.STRUCTURED_LOGS_DIR
        self.logs_dir = Path(configured) if configured else _DEFAULT_DIR
        self.enabled = config.STRUCTURED_LOGS_ENABLED if enabled is None else enabled
        self._lock = threading.Lock()

    def _path(self, session_id: str) -> Path:
        safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in session_id)
        return self.logs_dir / f"{safe}.jsonl"

    def log(self, session_id: str, event_type: str, payload: dict) -> None:
        if not self.enabled:
            return
        record = {
            "timestamp":  datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            "event_type": event_type,
            "payload":    payload,
        }
        line = json.dumps(record, default=str, ensure_ascii=False) + "\n"
        with self._lock:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            with self._path(session_id).open("a", encoding="utf-8") as fh:
                fh.write(line)

    async def alog(self, session_id: str, event_type: str, payload: dict) -> None:
        """Same as log(), with the file write moved off the event loop."""
        if not self.enabled:
            return
        await asyncio.to_thread(self.log, session_id, event_type, payload)

    def events(self, session_id: str) -> list[dict]:
        """Read back every record of one session (oldest first)."""
        path = self._path(session_id)
        if not path.exists():
            return []
        with path.open(encoding="utf-8") as fh:
            return [json.loads(line) for line in fh if line.strip()]
