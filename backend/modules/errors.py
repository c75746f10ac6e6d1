"""
modules/errors.py
-----------------
Exception taxonomy for the Trip Brain core.

  Input errors           — DimensionMismatchError
  Missing records        — RecordNotFoundError
  Capability unavailable — ModelNotReadyError, EmbeddingError
  Downstream service     — CloudPlannerError
  Conversation state     — PendingActionConflictError, NoPendingActionError
  Cancellation           — GenerationCancelledError

Rejected modification requests (no target, no slot) are NOT errors; they are
returned as outcomes by TripBrain.
"""

from __future__ import annotations


class TripBrainError(RuntimeError):
    """Base class for every error raised by the reasoning layer."""


class DimensionMismatchError(TripBrainError, ValueError):
    """Two vectors of different length were compared."""

    def __init__(self, len_a: int, len_b: int) -> None:
        super().__init__(f"Vectors must have the same length ({len_a} != {len_b})")
        self.len_a = len_a
        self.len_b = len_b


class ModelNotReadyError(TripBrainError):
    """The on-device model has not been downloaded / loaded yet."""

    def __init__(self, message: str = "AI model not downloaded. Please download the model first.") -> None:
        super().__init__(message)


class EmbeddingError(TripBrainError):
    """The embedding engine returned nothing usable."""


class GenerationCancelledError(TripBrainError):
    """An in-flight completion was cancelled through its CancellationToken."""


class CloudPlannerError(TripBrainError):
    """The cloud planner returned a non-success response or no items."""


class PendingActionConflictError(TripBrainError):
    """A new modification arrived while another one awaits confirmation."""


class NoPendingActionError(TripBrainError):
    """apply / dismiss was called with nothing pending."""


class RecordNotFoundError(TripBrainError, LookupError):
    """A trip, day plan or item id does not exist in storage."""
