"""Unit tests for control-signal computation."""

from __future__ import annotations

import itertools

import pytest

from cuidado.engine.signals import compute_signals
from cuidado.engine.signals import SignalInputs
from cuidado.engine.signals import support_score
from cuidado.engine.signals import unique_word_ratio


class TestHelpers:
    def test_support_is_mean_of_top_three(self):
        assert support_score([0.1, 0.9, 0.7, 0.8]) == pytest.approx(0.8)

    def test_support_is_clamped(self):
        assert support_score([2.0]) == 1.0
        assert support_score([-1.0]) == 0.0

    def test_support_of_no_scores_is_zero(self):
        assert support_score([]) == 0.0

    def test_unique_ratio_ignores_short_words(self):
        assert unique_word_ratio("the cat is a cat the") == pytest.approx(0.5)

    def test_unique_ratio_of_empty_text_is_zero(self):
        assert unique_word_ratio("a b c") == 0.0


class TestComputeSignals:
    def test_exact_values_without_support(self):
        sig = compute_signals(SignalInputs(user_message="hello world", answer_draft="Sure."))
        length = 5 / 1600
        assert sig.uncertainty == pytest.approx(0.55 + 0.1 * length)
        assert sig.novelty == pytest.approx(1.0)
        assert sig.stability == pytest.approx(0.2 + 0.1 * (1 - abs(length - 0.3)))
        assert sig.value_at_risk == pytest.approx(0.1 * sig.uncertainty)

    def test_low_support_and_hedging_raise_uncertainty(self):
        sig = compute_signals(
            SignalInputs(
                user_message="what is this?",
                answer_draft="It might be, perhaps, unclear.",
                retrieval_scores=[0.1, 0.0],
                tokens_approx=120,
            )
        )
        assert sig.uncertainty > 0.5
        assert sig.stability < 0.7

    def test_risk_terms_raise_value_at_risk(self):
        sig = compute_signals(
            SignalInputs(
                user_message="what dosage should I take?",
                answer_draft="I cannot advise on dosage.",
                retrieval_scores=[0.8, 0.7],
                tokens_approx=80,
            )
        )
        assert sig.value_at_risk > 0.4

    def test_risk_in_draft_alone_counts(self):
        sig = compute_signals(
            SignalInputs(user_message="tell me more", answer_draft="Check the legal terms.")
        )
        assert sig.value_at_risk >= 0.6

    def test_criticality_adds_to_value_at_risk(self):
        base = SignalInputs(user_message="plan my week", answer_draft="Here you go.")
        critical = SignalInputs(
            user_message="plan my week", answer_draft="Here you go.", user_criticality=1.0
        )
        delta = compute_signals(critical).value_at_risk - compute_signals(base).value_at_risk
        assert delta == pytest.approx(0.3)

    def test_zero_tokens_fall_back_to_draft_length(self):
        draft = "x" * 3200
        sig = compute_signals(SignalInputs(user_message="hi", answer_draft=draft))
        assert sig.uncertainty == pytest.approx(0.65)

    def test_strong_support_lowers_uncertainty(self):
        weak = compute_signals(
            SignalInputs(user_message="q", answer_draft="A.", retrieval_scores=[0.1])
        )
        strong = compute_signals(
            SignalInputs(user_message="q", answer_draft="A.", retrieval_scores=[0.9])
        )
        assert strong.uncertainty < weak.uncertainty
        assert strong.stability > weak.stability

    @pytest.mark.parametrize(
        ("scores", "criticality", "tokens"),
        list(itertools.product([[], [0.0], [5.0, 5.0, 5.0]], [0.0, 1.0, 7.0], [0, 10**6])),
    )
    def test_values_stay_in_unit_interval(self, scores, criticality, tokens):
        sig = compute_signals(
            SignalInputs(
                user_message="hack the password drug dosage finance investment legal",
                answer_draft="maybe perhaps probably it seems it appears might could unsure unclear",
                retrieval_scores=scores,
                tokens_approx=tokens,
                user_criticality=criticality,
            )
        )
        for value in (sig.uncertainty, sig.novelty, sig.stability, sig.value_at_risk):
            assert 0.0 <= value <= 1.0
