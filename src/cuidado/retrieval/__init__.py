"""Retrieval domain: BM25, dense cosine, RRF fusion and the hybrid orchestrator."""

from cuidado.retrieval.dense import cosine
from cuidado.retrieval.dense import dense_top_k
from cuidado.retrieval.fusion import rrf_fuse
from cuidado.retrieval.hybrid import hybrid_retrieve
from cuidado.retrieval.lexical import bm25_top_k
from cuidado.retrieval.lexical import build_corpus
from cuidado.retrieval.lexical import STOPWORDS
from cuidado.retrieval.lexical import tokenize
from cuidado.retrieval.schemas import HybridHit
from cuidado.retrieval.schemas import Retrieved

__all__ = [
    "STOPWORDS",
    "HybridHit",
    "Retrieved",
    "bm25_top_k",
    "build_corpus",
    "cosine",
    "dense_top_k",
    "hybrid_retrieve",
    "rrf_fuse",
    "tokenize",
]
