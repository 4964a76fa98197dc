"""Hybrid retrieval: BM25 and dense rankings fused with RRF."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from cuidado.config import RetrievalConfig
from cuidado.retrieval.dense import dense_top_k
from cuidado.retrieval.fusion import rrf_fuse
from cuidado.retrieval.lexical import bm25_top_k
from cuidado.retrieval.schemas import HybridHit

if TYPE_CHECKING:
    from cuidado.memory.schemas import Fragment


def hybrid_retrieve(
    fragments: Sequence[Fragment],
    query_vector: Sequence[float],
    query: str,
    k: int | None = None,
    *,
    config: RetrievalConfig | None = None,
) -> list[HybridHit]:
    """Return up to *k* fused hits annotated with their dense/BM25 sub-scores.

    Pure function: embeddings must already be present on *fragments* and
    *query_vector* must already be computed by the caller.
    """
    cfg = config or RetrievalConfig()
    top_k = cfg.top_k if k is None else k

    lexical = bm25_top_k(fragments, query, top_k, k1=cfg.bm25_k1, b=cfg.bm25_b)
    dense = dense_top_k(fragments, query_vector, top_k)
    fused = rrf_fuse(dense, lexical, top_k, kappa=cfg.rrf_kappa)

    lexical_scores = {hit.id: hit.score for hit in lexical}
    dense_scores = {hit.id: hit.score for hit in dense}
    return [
        HybridHit(
            **hit.model_dump(),
            dense=dense_scores.get(hit.id, 0.0),
            bm25=lexical_scores.get(hit.id, 0.0),
        )
        for hit in fused
    ]
