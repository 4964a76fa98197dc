"""Evidence models produced by the retrieval strategies."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel
from pydantic import Field

RetrievalMode = Literal["dense", "bm25"]


class Retrieved(BaseModel):
    """An evidence item returned by a single search strategy."""

    id: str = Field(description="Identifier of the source fragment.")
    text: str = Field(description="Fragment text.")
    tags: list[str] = Field(default_factory=list, description="Fragment tags.")
    score: float = Field(description="Strategy-specific score (BM25, cosine or RRF).")
    mode: RetrievalMode = Field(description="Strategy that produced the payload.")


class HybridHit(Retrieved):
    """A fused evidence item annotated with its per-strategy sub-scores."""

    dense: float = Field(
        default=0.0,
        description="Cosine score from the dense ranking, 0 if absent there.",
    )
    bm25: float = Field(
        default=0.0,
        description="BM25 score from the lexical ranking, 0 if absent there.",
    )
