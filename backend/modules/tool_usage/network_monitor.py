"""
modules/tool_usage/network_monitor.py
---------------------------------------
Connectivity check used by the hybrid planner.

A HEAD request to NETWORK_PROBE_URL decides online/offline; the answer is
cached for NETWORK_PROBE_TTL_S seconds.  force() pins the status (airplane
mode toggle, tests) until force(None) releases it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import requests

import config

logger = logging.getLogger(__name__)


class NetworkMonitor:
    def __init__(
        self,
        probe_url: str = config.NETWORK_PROBE_URL,
        timeout:   float = config.NETWORK_PROBE_TIMEOUT,
        ttl_s:     float = config.NETWORK_PROBE_TTL_S,
    ) -> None:
        self.probe_url = probe_url
        self.timeout = timeout
        self.ttl_s = ttl_s
        self._forced: Optional[bool] = None
        self._cached: Optional[bool] = None
        self._checked_at: float = 0.0

    def force(self, online: Optional[bool]) -> None:
        self._forced = online

    def _probe(self) -> bool:
        try:
            resp = requests.head(self.probe_url, timeout=self.timeout, allow_redirects=True)
            return resp.status_code < 500
        except requests.RequestException as exc:
            logger.info("Network probe failed, treating as offline: %s", exc)
            return False

    async def is_online(self) -> bool:
        if self._forced is not None:
            return self._forced
        now = time.monotonic()
        if self._cached is None or now - self._checked_at > self.ttl_s:
            self._cached = await asyncio.to_thread(self._probe)
            self._checked_at = now
        return self._cached
