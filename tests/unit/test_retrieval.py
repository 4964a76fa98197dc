"""Unit tests for BM25, dense cosine, RRF fusion and hybrid retrieval."""

from __future__ import annotations

import math

import pytest

from cuidado.config import RetrievalConfig
from cuidado.memory.schemas import Fragment
from cuidado.retrieval import bm25_top_k
from cuidado.retrieval import build_corpus
from cuidado.retrieval import cosine
from cuidado.retrieval import dense_top_k
from cuidado.retrieval import hybrid_retrieve
from cuidado.retrieval import rrf_fuse
from cuidado.retrieval import Retrieved
from cuidado.retrieval import STOPWORDS
from cuidado.retrieval import tokenize


def _frag(fid: str, text: str, embedding: list[float] | None = None) -> Fragment:
    return Fragment(id=fid, text=text, tags=["lesson"], embedding=embedding or [])


@pytest.fixture()
def corpus() -> list[Fragment]:
    return [
        _frag("a", "The system uses bullets and TLDR for fast reading.", [0.1, 0.2, 0.3]),
        _frag("b", "We add retrieval first then answer concisely.", [0.2, 0.1, 0.35]),
        _frag("c", "This text is unrelated to the topic.", [0.0, 0.0, 0.1]),
    ]


def _hit(fid: str, score: float, mode: str = "dense") -> Retrieved:
    return Retrieved(id=fid, text=f"text {fid}", tags=[], score=score, mode=mode)


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


class TestTokenize:
    def test_lowercases_and_drops_single_characters(self):
        assert tokenize("A Quick X-ray of Go") == ["quick", "x-ray", "of", "go"]

    def test_normalises_typographic_apostrophes(self):
        assert tokenize("Don’t panic") == ["don't", "panic"]

    def test_stopword_list_is_fixed(self):
        assert len(STOPWORDS) == 33
        assert {"the", "you", "i"} <= STOPWORDS


# ---------------------------------------------------------------------------
# BM25
# ---------------------------------------------------------------------------


class TestBM25:
    def test_lexical_match_ranks_first(self, corpus):
        hits = bm25_top_k(corpus, "TLDR bullets", 2)
        assert hits[0].id == "a"
        assert hits[0].mode == "bm25"

    def test_is_deterministic(self, corpus):
        first = bm25_top_k(corpus, "retrieval answer", 3)
        second = bm25_top_k(corpus, "retrieval answer", 3)
        assert [(h.id, h.score) for h in first] == [(h.id, h.score) for h in second]

    def test_non_matching_documents_are_dropped(self, corpus):
        hits = bm25_top_k(corpus, "TLDR", 6)
        assert [h.id for h in hits] == ["a"]
        assert hits[0].score > 0

    def test_empty_candidates(self):
        assert bm25_top_k([], "anything") == []

    def test_stopword_only_query(self, corpus):
        assert bm25_top_k(corpus, "the and of", 3) == []

    def test_k_limits_results(self, corpus):
        hits = bm25_top_k(corpus, "the system retrieval topic", 2)
        assert len(hits) == 2

    def test_ties_keep_candidate_order(self):
        frags = [_frag("x", "alpha beta"), _frag("y", "alpha beta")]
        assert [h.id for h in bm25_top_k(frags, "alpha", 2)] == ["x", "y"]

    def test_documents_without_tokens_do_not_divide_by_zero(self):
        frags = [_frag("x", "!"), _frag("y", "?")]
        corpus = build_corpus(frags)
        assert corpus.avg_length == 0
        assert bm25_top_k(frags, "alpha", 2) == []

    def test_idf_matches_smoothed_formula(self, corpus):
        stats = build_corpus(corpus)
        df = stats.doc_freq["tldr"]
        expected = math.log(1 + (3 - df + 0.5) / (df + 0.5))
        assert stats.idf("tldr") == pytest.approx(expected)
        assert "the" not in stats.doc_freq


# ---------------------------------------------------------------------------
# Dense
# ---------------------------------------------------------------------------


class TestDense:
    def test_cosine_of_identical_vectors_is_one(self):
        assert cosine([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_cosine_of_orthogonal_vectors_is_zero(self):
        assert cosine([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_cosine_pads_shorter_vector_with_zeros(self):
        assert cosine([1.0, 0.0, 5.0], [1.0]) == pytest.approx(1 / math.sqrt(26))

    def test_cosine_of_zero_vector_is_zero(self):
        assert cosine([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_unembedded_fragments_are_skipped(self, corpus):
        frags = [*corpus, _frag("d", "no vector yet")]
        hits = dense_top_k(frags, [0.2, 0.15, 0.3], 10)
        assert {h.id for h in hits} == {"a", "b", "c"}
        assert all(h.mode == "dense" for h in hits)

    def test_sorted_by_similarity(self, corpus):
        hits = dense_top_k(corpus, [0.1, 0.2, 0.3], 3)
        assert hits[0].id == "a"
        assert hits[0].score >= hits[1].score >= hits[2].score


# ---------------------------------------------------------------------------
# RRF
# ---------------------------------------------------------------------------


class TestRRF:
    def test_fuses_disjoint_lists(self):
        fused = rrf_fuse([_hit("a", 0.9)], [_hit("b", 3.0, "bm25")], 3)
        assert {h.id for h in fused} == {"a", "b"}

    def test_output_ids_come_from_inputs(self):
        first = [_hit("a", 0.9), _hit("b", 0.5)]
        second = [_hit("b", 2.0, "bm25"), _hit("c", 1.0, "bm25")]
        fused = rrf_fuse(first, second, 10)
        assert fused
        assert {h.id for h in fused} <= {"a", "b", "c"}

    def test_item_in_both_lists_wins(self):
        first = [_hit("a", 0.9), _hit("b", 0.5)]
        second = [_hit("b", 2.0, "bm25"), _hit("c", 1.0, "bm25")]
        fused = rrf_fuse(first, second, 3)
        assert fused[0].id == "b"
        assert fused[0].score == pytest.approx(1 / 62 + 1 / 61)

    def test_absent_items_get_no_contribution(self):
        fused = rrf_fuse([_hit("a", 0.9)], [], 3)
        assert fused[0].score == pytest.approx(1 / 61)

    def test_payload_comes_from_first_list(self):
        first = [_hit("a", 0.9, "dense")]
        second = [_hit("a", 5.0, "bm25")]
        assert rrf_fuse(first, second, 1)[0].mode == "dense"

    def test_ranking_is_scale_invariant(self):
        first = [_hit("a", 0.9), _hit("b", 0.5), _hit("c", 0.1)]
        second = [_hit("c", 4.0, "bm25"), _hit("a", 2.0, "bm25")]
        scaled = [_hit(h.id, h.score * 1000, "bm25") for h in second]
        original = [h.id for h in rrf_fuse(first, second, 3)]
        assert [h.id for h in rrf_fuse(first, scaled, 3)] == original

    def test_k_zero_returns_nothing(self):
        assert rrf_fuse([_hit("a", 1.0)], [_hit("b", 1.0)], 0) == []


# ---------------------------------------------------------------------------
# Hybrid
# ---------------------------------------------------------------------------


class TestHybridRetrieve:
    def test_attaches_sub_scores(self, corpus):
        hits = hybrid_retrieve(corpus, [0.1, 0.2, 0.3], "TLDR bullets", 3)
        top = next(h for h in hits if h.id == "a")
        assert top.dense == pytest.approx(cosine([0.1, 0.2, 0.3], [0.1, 0.2, 0.3]))
        assert top.bm25 > 0

    def test_lexical_only_hit_has_zero_dense_score(self):
        frags = [_frag("a", "alpha beta"), _frag("b", "gamma", [1.0, 0.0])]
        hits = hybrid_retrieve(frags, [1.0, 0.0], "alpha", 6)
        lexical = next(h for h in hits if h.id == "a")
        assert lexical.dense == 0.0
        assert lexical.bm25 > 0

    def test_default_k_comes_from_config(self, corpus):
        hits = hybrid_retrieve(
            corpus, [0.1, 0.2, 0.3], "system retrieval topic", config=RetrievalConfig(top_k=1)
        )
        assert len(hits) == 1

    def test_empty_corpus(self):
        assert hybrid_retrieve([], [1.0], "anything") == []
