"""
config.py
---------
Central configuration for Trip Brain.
All secrets loaded from environment variables — never hard-coded.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the backend directory (if it exists) so env vars in that file
# are picked up by os.getenv() below.
_env_path = Path(__file__).parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path, override=True)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# ── Cloud planner (Gemini) ───────────────────────────────────────────────────
GEMINI_API_KEY: str    = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL_NAME: str = os.getenv("GEMINI_MODEL_NAME", "gemini-2.0-flash")
CLOUD_ITEMS_MIN: int   = int(os.getenv("CLOUD_ITEMS_MIN", "4"))
CLOUD_ITEMS_MAX: int   = int(os.getenv("CLOUD_ITEMS_MAX", "6"))

# ── On-device engine ─────────────────────────────────────────────────────────
# Embeddings: sentence-transformers model name (downloaded on first load).
EMBEDDING_MODEL_NAME: str = os.getenv("EMBEDDING_MODEL_NAME", "all-MiniLM-L6-v2")
# Completions: llama.cpp-compatible server running on the device.
LOCAL_COMPLETION_URL: str     = os.getenv("LOCAL_COMPLETION_URL", "http://localhost:8080/completion")
LOCAL_COMPLETION_TIMEOUT: int = int(os.getenv("LOCAL_COMPLETION_TIMEOUT", "120"))

COMPLETION_MAX_TOKENS: int    = int(os.getenv("COMPLETION_MAX_TOKENS", "512"))
COMPLETION_TEMPERATURE: float = float(os.getenv("COMPLETION_TEMPERATURE", "0.7"))
COMPLETION_TOP_P: float       = float(os.getenv("COMPLETION_TOP_P", "0.9"))

# Recent turns replayed into a Q&A completion
CHAT_HISTORY_TURNS: int = int(os.getenv("CHAT_HISTORY_TURNS", "10"))

# ── Storage backend ──────────────────────────────────────────────────────────
STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "memory")   # "memory" | "redis"
STORAGE_KEY_PREFIX: str = os.getenv("STORAGE_KEY_PREFIX", "@tripbrain")

REDIS_HOST: str     = os.getenv("REDIS_HOST",     "localhost")
REDIS_PORT: int     = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB: int       = int(os.getenv("REDIS_DB",   "0"))
REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")

# ── Memory search ────────────────────────────────────────────────────────────
MEMORY_TOP_K: int = int(os.getenv("MEMORY_TOP_K", "5"))

# ── Logistics / slot finding ─────────────────────────────────────────────────
DAY_START_HOUR: int = int(os.getenv("DAY_START_HOUR", "8"))    # 08:00
DAY_END_HOUR: int   = int(os.getenv("DAY_END_HOUR",   "22"))   # 22:00
NOON_HOUR: int      = 12
# Above this many items the quadratic spatial pass is logged as a warning.
SPATIAL_PASS_WARN_NODES: int = int(os.getenv("SPATIAL_PASS_WARN_NODES", "200"))

# Window sent to the cloud planner when the caller gives none
DEFAULT_PLAN_START: str = os.getenv("DEFAULT_PLAN_START", "09:00")
DEFAULT_PLAN_END: str   = os.getenv("DEFAULT_PLAN_END",   "21:00")

# ── Network probe ────────────────────────────────────────────────────────────
NETWORK_PROBE_URL: str       = os.getenv("NETWORK_PROBE_URL", "https://www.google.com/generate_204")
NETWORK_PROBE_TIMEOUT: float = float(os.getenv("NETWORK_PROBE_TIMEOUT", "3.0"))
NETWORK_PROBE_TTL_S: float   = float(os.getenv("NETWORK_PROBE_TTL_S", "15.0"))

# ── Observability ────────────────────────────────────────────────────────────
STRUCTURED_LOGS_ENABLED: bool = _flag("STRUCTURED_LOGS_ENABLED", "true")
STRUCTURED_LOGS_DIR: str      = os.getenv("STRUCTURED_LOGS_DIR", "")   # "" = backend/logs
