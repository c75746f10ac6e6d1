"""
modules/tool_usage/on_device_engine.py
----------------------------------------
On-device inference engine: local embeddings + local completions.

  Embeddings  — sentence-transformers model (EMBEDDING_MODEL_NAME), fetched
                into the local cache by download().
  Completions — llama.cpp-compatible server on the device
                (POST LOCAL_COMPLETION_URL, ChatML prompt, optional SSE stream).

Both capabilities refuse to run until download() has completed and raise
ModelNotReadyError instead.  Blocking calls run in a worker thread so the
event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import threading
import time
from typing import Callable, Optional

import requests
from sentence_transformers import SentenceTransformer

import config
from modules.errors import EmbeddingError, ModelNotReadyError
from modules.tool_usage.engine import (
    CancellationToken,
    ChatMessage,
    CompletionOptions,
    CompletionResult,
    EngineState,
    TokenCallback,
)

logger = logging.getLogger(__name__)

# Thinking blocks and chat-template tokens some small models leak into output
_CLEANUP_PATTERNS = [
    re.compile(r"<think>[\s\S]*?</think>"),
    re.compile(r"</?think>"),
    re.compile(r"<\|im_start\|>"),
    re.compile(r"<\|im_end\|>"),
    re.compile(r"<\|endoftext\|>"),
]

_CHATML_STOP = "<|im_end|>"


def clean_response(text: str) -> str:
    for pattern in _CLEANUP_PATTERNS:
        text = pattern.sub("", text)
    return text.strip()


def render_chatml(messages: list[ChatMessage]) -> str:
    """Render messages with the ChatML template and open an assistant turn."""
    parts = [f"<|im_start|>{m.role}\n{m.content}<|im_end|>\n" for m in messages]
    parts.append("<|im_start|>assistant\n")
    return "".join(parts)


class OnDeviceEngine:
    def __init__(
        self,
        model_name:     str = config.EMBEDDING_MODEL_NAME,
        completion_url: str = config.LOCAL_COMPLETION_URL,
        timeout:        int = config.LOCAL_COMPLETION_TIMEOUT,
    ) -> None:
        self.model_name = model_name
        self.completion_url = completion_url
        self.timeout = timeout
        self._model: Optional[SentenceTransformer] = None
        self._state = EngineState()
        self._lock = threading.Lock()

    # ── state / lifecycle ─────────────────────────────────────────────────────

    def state(self) -> EngineState:
        with self._lock:
            return EngineState(**vars(self._state))

    async def download(self, on_progress: Optional[Callable[[float], None]] = None) -> None:
        """Fetch and load the embedding model; the engine is ready afterwards."""
        with self._lock:
            if self._state.is_downloaded or self._state.is_downloading:
                return
            self._state.is_downloading = True
            self._state.error = None
        try:
            model = await asyncio.to_thread(SentenceTransformer, self.model_name)
        except Exception as exc:
            with self._lock:
                self._state.is_downloading = False
                self._state.error = str(exc)
            logger.error("On-device model download failed: %s", exc)
            raise
        with self._lock:
            self._model = model
            self._state.is_downloading = False
            self._state.is_downloaded = True
            self._state.download_progress = 1.0
        if on_progress:
            on_progress(1.0)
        logger.info("On-device model %s ready", self.model_name)

    def destroy(self) -> None:
        with self._lock:
            self._model = None
            self._state = EngineState()

    def _require_ready(self) -> SentenceTransformer:
        with self._lock:
            if not self._state.is_ready or self._model is None:
                raise ModelNotReadyError()
            return self._model

    # ── embeddings ────────────────────────────────────────────────────────────

    async def embed(self, text: str) -> list[float]:
        model = self._require_ready()
        vector = await asyncio.to_thread(model.encode, text, convert_to_numpy=True)
        embedding = [float(v) for v in vector]
        if not embedding:
            raise EmbeddingError("embedding model returned an empty vector")
        return embedding

    # ── completions ───────────────────────────────────────────────────────────

    async def complete(
        self,
        messages: list[ChatMessage],
        options:  Optional[CompletionOptions] = None,
        on_token: Optional[TokenCallback] = None,
        cancel:   Optional[CancellationToken] = None,
    ) -> CompletionResult:
        self._require_ready()
        options = options or CompletionOptions()
        logger.debug("Local completion: %d messages, max_tokens=%d", len(messages), options.max_tokens)

        with self._lock:
            self._state.is_generating = True
        try:
            return await asyncio.to_thread(self._complete_sync, messages, options, on_token, cancel)
        finally:
            with self._lock:
                self._state.is_generating = False

    def _payload(self, messages: list[ChatMessage], options: CompletionOptions, stream: bool) -> dict:
        return {
            "prompt":      render_chatml(messages),
            "n_predict":   options.max_tokens,
            "temperature": options.temperature,
            "top_p":       options.top_p,
            "stop":        [_CHATML_STOP, *options.stop_sequences],
            "stream":      stream,
        }

    def _complete_sync(
        self,
        messages: list[ChatMessage],
        options:  CompletionOptions,
        on_token: Optional[TokenCallback],
        cancel:   Optional[CancellationToken],
    ) -> CompletionResult:
        if cancel:
            cancel.raise_if_cancelled()

        if on_token is None:
            resp = requests.post(
                self.completion_url,
                json=self._payload(messages, options, stream=False),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
            timings = data.get("timings") or {}
            return CompletionResult(
                response=clean_response(data.get("content", "")),
                total_tokens=data.get("tokens_predicted"),
                tokens_per_second=timings.get("predicted_per_second"),
            )

        # Streamed: server-sent events, one JSON object per "data:" line
        started = time.monotonic()
        pieces: list[str] = []
        with requests.post(
            self.completion_url,
            json=self._payload(messages, options, stream=True),
            timeout=self.timeout,
            stream=True,
        ) as resp:
            resp.raise_for_status()
            for line in resp.iter_lines(decode_unicode=True):
                if cancel:
                    cancel.raise_if_cancelled()
                if not line or not line.startswith("data:"):
                    continue
                event = json.loads(line[len("data:"):].strip())
                token = event.get("content", "")
                if token:
                    pieces.append(token)
                    on_token(token)
                if event.get("stop"):
                    break

        elapsed = time.monotonic() - started
        return CompletionResult(
            response=clean_response("".join(pieces)),
            total_tokens=len(pieces),
            tokens_per_second=(len(pieces) / elapsed) if elapsed > 0 else None,
        )
