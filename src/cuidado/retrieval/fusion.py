"""Reciprocal Rank Fusion of two ranked evidence lists.

RRF works on ranks alone, so BM25 weights and cosine similarities can be
combined without normalising their very different score scales.
"""

from __future__ import annotations

from collections.abc import Sequence

from cuidado.retrieval.schemas import Retrieved

DEFAULT_KAPPA = 60.0


def _ranks(ranking: Sequence[Retrieved]) -> dict[str, int]:
    ranks: dict[str, int] = {}
    for position, item in enumerate(ranking, start=1):
        # First occurrence wins if a strategy repeats an id.
        ranks.setdefault(item.id, position)
    return ranks


def rrf_fuse(
    first: Sequence[Retrieved],
    second: Sequence[Retrieved],
    k: int = 6,
    kappa: float = DEFAULT_KAPPA,
) -> list[Retrieved]:
    """Fuse two rankings into one, scored by ``sum(1 / (kappa + rank))``.

    An item contributes only from the lists it appears in. When an id is in
    both lists its payload (text, tags, mode) is taken from *first*. Output
    order is deterministic: fused score descending, then first-seen order.
    """
    if k <= 0:
        return []
    first_ranks = _ranks(first)
    second_ranks = _ranks(second)

    payloads: dict[str, Retrieved] = {}
    for item in (*first, *second):
        payloads.setdefault(item.id, item)

    fused: list[Retrieved] = []
    for item_id, payload in payloads.items():
        score = 0.0
        if item_id in first_ranks:
            score += 1.0 / (kappa + first_ranks[item_id])
        if item_id in second_ranks:
            score += 1.0 / (kappa + second_ranks[item_id])
        fused.append(payload.model_copy(update={"score": score}))

    fused.sort(key=lambda r: r.score, reverse=True)
    return fused[:k]
