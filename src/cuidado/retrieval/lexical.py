"""BM25 lexical retrieval over a transient, per-query corpus.

Statistics (document frequency, average length, N) are rebuilt from the
candidate set on every call. Candidate sets are a few hundred fragments at
most, so there is no persistent inverted index to keep in sync with the
store.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cuidado.retrieval.schemas import Retrieved

if TYPE_CHECKING:
    from cuidado.memory.schemas import Fragment

DEFAULT_K1 = 1.5
DEFAULT_B = 0.75

STOPWORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "to", "of", "in", "on", "for", "with",
        "is", "it", "that", "this", "as", "at", "by", "be", "are", "was",
        "were", "from", "about", "into", "over", "under", "if", "then", "so",
        "we", "you", "i",
    }
)  # fmt: skip

_TOKEN_RE = re.compile(r"\b[\w'‘’-]{2,}\b")
_CURLY_APOSTROPHE_RE = re.compile(r"[‘’]")


def tokenize(text: str) -> list[str]:
    """Split *text* into lower-cased word-like tokens of length >= 2."""
    return [
        _CURLY_APOSTROPHE_RE.sub("'", token)
        for token in _TOKEN_RE.findall(text.lower())
    ]


@dataclass(frozen=True)
class _Document:
    index: int
    length: int
    term_freq: Counter[str]


@dataclass(frozen=True)
class Corpus:
    """Transient BM25 statistics for one candidate set."""

    documents: tuple[_Document, ...]
    avg_length: float
    doc_freq: dict[str, int]

    @property
    def size(self) -> int:
        return len(self.documents)

    def idf(self, term: str) -> float:
        """BM25 idf with +0.5 smoothing; finite for df == 0."""
        df = self.doc_freq.get(term, 0)
        return math.log(1 + (self.size - df + 0.5) / (df + 0.5))


def build_corpus(fragments: Sequence[Fragment]) -> Corpus:
    """Compute document frequencies and average token length."""
    documents: list[_Document] = []
    doc_freq: Counter[str] = Counter()
    for index, fragment in enumerate(fragments):
        tokens = tokenize(fragment.text)
        documents.append(
            _Document(index=index, length=len(tokens), term_freq=Counter(tokens))
        )
        doc_freq.update({t for t in tokens if t not in STOPWORDS})

    total = sum(doc.length for doc in documents)
    avg_length = total / (len(documents) or 1)
    return Corpus(documents=tuple(documents), avg_length=avg_length, doc_freq=dict(doc_freq))


def bm25_score(
    corpus: Corpus,
    document: _Document,
    query_terms: set[str],
    *,
    k1: float = DEFAULT_K1,
    b: float = DEFAULT_B,
) -> float:
    """Sum the BM25 term scores of *query_terms* found in *document*."""
    # A corpus of token-less documents has avg_length 0; every term then
    # has f == 0 and is skipped before the ratio is used.
    score = 0.0
    for term in query_terms:
        f = document.term_freq.get(term, 0)
        if f == 0:
            continue
        norm = 1 - b + b * (document.length / corpus.avg_length)
        score += corpus.idf(term) * (f * (k1 + 1)) / (f + k1 * norm)
    return score


def bm25_top_k(
    fragments: Sequence[Fragment],
    query: str,
    k: int = 6,
    *,
    k1: float = DEFAULT_K1,
    b: float = DEFAULT_B,
) -> list[Retrieved]:
    """Rank *fragments* against *query* with BM25 and keep the best *k*.

    Only fragments sharing at least one non-stopword term with the query
    (score > 0) are returned, best first. Ties keep candidate order.
    """
    if not fragments or k <= 0:
        return []
    query_terms = {t for t in tokenize(query) if t not in STOPWORDS}
    if not query_terms:
        return []

    corpus = build_corpus(fragments)
    scored: list[Retrieved] = []
    for document in corpus.documents:
        score = bm25_score(corpus, document, query_terms, k1=k1, b=b)
        if score <= 0:
            continue
        fragment = fragments[document.index]
        scored.append(
            Retrieved(
                id=fragment.id,
                text=fragment.text,
                tags=list(fragment.tags),
                score=score,
                mode="bm25",
            )
        )

    scored.sort(key=lambda r: r.score, reverse=True)
    return scored[:k]
