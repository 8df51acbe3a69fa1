"""
domain.similarity - Vector math shared by search, storage and routing.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 for empty or mismatched input."""
    if not a or not b or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb)) + 1e-8
    return float(np.dot(va, vb) / denom)


def mean_of_top(values: Sequence[float], k: int = 3) -> float:
    """Mean of the k largest values (or of all of them if fewer)."""
    if not values:
        return 0.0
    top = sorted(values, reverse=True)[:k]
    return sum(top) / len(top)
