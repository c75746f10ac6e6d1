"""
modules/memory/cosine_index.py
--------------------------------
Brute-force cosine similarity search over caller-supplied candidates.

The index keeps no state of its own: the caller passes the trip's chunks on
every query, so a search is O(n·d) and there is nothing to persist or
invalidate.  At single-trip scale (tens to low thousands of chunks) that is
fast enough with numpy.
"""

from __future__ import annotations

from typing import Protocol, Sequence, TypeVar

import numpy as np

from modules.errors import DimensionMismatchError


class HasEmbedding(Protocol):
    embedding: Sequence[float]


T = TypeVar("T", bound=HasEmbedding)


def similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity in [-1, 1].

    Raises DimensionMismatchError when the lengths differ.  Returns 0.0 when
    either vector is empty or has zero magnitude.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    if len(a) == 0:
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    # float error can push |score| a hair past 1
    return max(-1.0, min(1.0, score))


def search(query: Sequence[float], candidates: Sequence[T], k: int) -> list[tuple[T, float]]:
    """
    Top-k candidates by cosine similarity to ``query``, highest first.

    Ties keep the candidates' original order (Python's sort is stable).
    """
    if k <= 0 or not candidates:
        return []
    scored = [(c, similarity(query, c.embedding)) for c in candidates]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:k]
