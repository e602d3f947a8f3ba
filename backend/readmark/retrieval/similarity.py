"""Vector similarity scoring."""

from __future__ import annotations

import math
from typing import Sequence

from readmark.core.errors import DimensionMismatchError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between ``a`` and ``b``, in [-1, 1].

    Raises ``DimensionMismatchError`` when the lengths differ. A zero vector
    has no direction, so any comparison involving one scores 0.0.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    score = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    return max(-1.0, min(1.0, score))


__all__ = ["cosine_similarity"]
