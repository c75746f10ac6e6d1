"""
modules/tool_usage/engine.py
-----------------------------
Capability contracts consumed by the reasoning layer.

  EmbeddingEngine   — embed(text) → vector
  CompletionEngine  — complete(messages, options, on_token, cancel) → CompletionResult
  ModelEngine       — both of the above plus readiness state (the on-device model)

Streaming is a plain ``on_token`` callback invoked once per token, in arrival
order.  Cancellation is explicit: the caller passes a CancellationToken and
the engine checks it between tokens.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

import config
from modules.errors import GenerationCancelledError

TokenCallback = Callable[[str], None]


@dataclass
class ChatMessage:
    role:    str     # "system" | "user" | "assistant"
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class CompletionOptions:
    max_tokens:     int = config.COMPLETION_MAX_TOKENS
    temperature:    float = config.COMPLETION_TEMPERATURE
    top_p:          float = config.COMPLETION_TOP_P
    stop_sequences: list[str] = field(default_factory=list)


@dataclass
class CompletionResult:
    response:          str
    total_tokens:      Optional[int] = None
    tokens_per_second: Optional[float] = None


@dataclass
class EngineState:
    is_downloaded:     bool = False
    is_downloading:    bool = False
    download_progress: float = 0.0
    is_generating:     bool = False
    error:             Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.is_downloaded and not self.is_downloading


class CancellationToken:
    """Thread-safe cancel flag; engines may run generation off the event loop."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationCancelledError("generation cancelled")


class EmbeddingEngine(Protocol):
    async def embed(self, text: str) -> list[float]: ...


class CompletionEngine(Protocol):
    async def complete(
        self,
        messages: list[ChatMessage],
        options:  Optional[CompletionOptions] = None,
        on_token: Optional[TokenCallback] = None,
        cancel:   Optional[CancellationToken] = None,
    ) -> CompletionResult: ...


class ModelEngine(EmbeddingEngine, CompletionEngine, Protocol):
    def state(self) -> EngineState: ...
