"""Dense retrieval by cosine similarity over stored fragment embeddings."""

from __future__ import annotations

import math
from collections.abc import Sequence
from itertools import zip_longest
from typing import TYPE_CHECKING

from cuidado.retrieval.schemas import Retrieved

if TYPE_CHECKING:
    from cuidado.memory.schemas import Fragment

_EPSILON = 1e-9


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; missing trailing components count as zero."""
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip_longest(a, b, fillvalue=0.0):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b) + _EPSILON)


def dense_top_k(
    fragments: Sequence[Fragment],
    query_vector: Sequence[float],
    k: int = 6,
) -> list[Retrieved]:
    """Rank embedded *fragments* by cosine similarity to *query_vector*.

    Fragments without an embedding are skipped; they become eligible once
    the store back-fills their vectors.
    """
    if k <= 0:
        return []
    scored = [
        Retrieved(
            id=fragment.id,
            text=fragment.text,
            tags=list(fragment.tags),
            score=cosine(fragment.embedding, query_vector),
            mode="dense",
        )
        for fragment in fragments
        if fragment.embedding
    ]
    scored.sort(key=lambda r: r.score, reverse=True)
    return scored[:k]
