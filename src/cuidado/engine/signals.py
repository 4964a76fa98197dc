"""Control-signal computation.

Derives the four per-turn scalars (uncertainty, novelty, stability,
value-at-risk) from retrieval support, hedging language in the draft, draft
length, lexical variety of the user message and risk keywords. Every output
is clamped to [0, 1].
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field

from cuidado.engine.schemas import ControlSignals

HEDGE_RE = re.compile(
    r"\b(maybe|perhaps|probably|it seems|it appears|might|could|unsure|unclear)\b",
    re.IGNORECASE,
)
RISK_RE = re.compile(
    r"\b(drug|dosage|medical|finance|investment|legal|weapon|explosive|hack"
    r"|password|paywall|pii)\b",
    re.IGNORECASE,
)

_WORD_RE = re.compile(r"\b[\w'-]+\b")

_LENGTH_SCALE = 1600.0
_SUPPORT_TOP_N = 3


@dataclass(frozen=True)
class SignalInputs:
    """Everything the signal computer looks at for one turn."""

    user_message: str
    answer_draft: str
    retrieval_scores: Sequence[float] = field(default_factory=tuple)
    tokens_approx: int = 0
    user_criticality: float = 0.0


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def support_score(scores: Sequence[float]) -> float:
    """Mean of the three best scores, clamped; 0 when there are none."""
    if not scores:
        return 0.0
    top = sorted(scores, reverse=True)[:_SUPPORT_TOP_N]
    return clamp01(sum(top) / len(top))


def unique_word_ratio(text: str) -> float:
    words = [w for w in _WORD_RE.findall(text.lower()) if len(w) > 2]
    if not words:
        return 0.0
    return len(set(words)) / len(words)


def compute_signals(inputs: SignalInputs) -> ControlSignals:
    support = support_score(inputs.retrieval_scores)
    hedge = 1.0 if HEDGE_RE.search(inputs.answer_draft) else 0.0
    length = clamp01((inputs.tokens_approx or len(inputs.answer_draft)) / _LENGTH_SCALE)

    uncertainty = clamp01((1 - support) * 0.55 + hedge * 0.35 + length * 0.10)
    novelty = clamp01(
        (1 - support) * 0.6 + unique_word_ratio(inputs.user_message) * 0.4
    )
    stability = clamp01(
        support * 0.7 + (1 - hedge) * 0.2 + (1 - abs(length - 0.3)) * 0.1
    )

    risky = RISK_RE.search(inputs.user_message) or RISK_RE.search(inputs.answer_draft)
    risk = 1.0 if risky else 0.0
    value_at_risk = clamp01(
        risk * 0.6 + clamp01(inputs.user_criticality) * 0.3 + uncertainty * 0.1
    )

    return ControlSignals(
        uncertainty=uncertainty,
        novelty=novelty,
        stability=stability,
        value_at_risk=value_at_risk,
    )
