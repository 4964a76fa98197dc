"""Reader-aware response shaping.

The shaper predicts how the reader wants the answer laid out (from the
user model), scores the draft against that prediction and the reading
environment, then rewrites it deterministically:

- a ``TL;DR`` of the first four lines when pace or attention risk is high;
- paragraphs promoted to ``•`` bullets for bullet-forward readers;
- filler words removed for direct readers.

Shaping runs before the safety post-check, so a disclaimer footer is never
reshaped.
"""

from __future__ import annotations

import logging
import re

from cuidado.engine.schemas import InterfaceSignals
from cuidado.engine.schemas import ReaderEnvironment
from cuidado.engine.schemas import ReaderPrediction
from cuidado.engine.schemas import UserModel

logger = logging.getLogger(__name__)

PACE_TLDR_THRESHOLD = 0.7
ATTENTION_TLDR_THRESHOLD = 0.6
LONG_DRAFT_CHARS = 1800
SUMMARY_MAX_CHARS = 1000

_TLDR_LINES = 4
_BULLET_RE = re.compile(r"\n\s*[-*•]")
_PARAGRAPH_BREAK_RE = re.compile(r"\n{2,}")
_FILLER_RE = re.compile(r"\b(very|really|just|basically|kind of|actually)\b", re.IGNORECASE)
_DOUBLE_SPACE_RE = re.compile(r"(?<=\S) {2,}(?=\S)")


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


# ---------------------------------------------------------------------------
# Prediction and scoring
# ---------------------------------------------------------------------------


def simulate_reader(user: UserModel) -> ReaderPrediction:
    """Infer reading needs from the user's style preferences and traits."""
    wants_code = "code-first" in user.style_prefs
    wants_bullets = "bullets" in user.style_prefs
    return ReaderPrediction(
        cognition=[
            "prefer runnable snippets" if wants_code else "prefer structure-first",
            "tie output to my stated goals/values",
        ],
        desired_outcome=["clear next steps", "code snippet" if wants_code else "outline"],
        tone_advice=[
            "bullet-forward" if wants_bullets else "paragraph",
            "direct" if "direct" in user.traits else "warm",
        ],
    )


def environment_baseline(env: ReaderEnvironment) -> tuple[float, float]:
    """Return ``(engagement, pace)`` for the reading environment.

    Moving, speaking or high energy push pace up; distraction pulls
    engagement down and speaking lifts it.
    """
    pace = 0.4
    if env.movement == "walking":
        pace += 0.35
    elif env.movement == "driving":
        pace += 0.45
    if env.speaking:
        pace += 0.15
    pace += (env.energy - 0.4) * 0.4

    attention = {"high": 0.3, "medium": 0.55}.get(env.distraction, 0.8)
    engagement = 0.6 * attention + (0.25 if env.speaking else 0.0)
    return _clamp01(engagement), _clamp01(pace)


def compute_interface_signals(
    draft: str,
    prediction: ReaderPrediction,
    env: ReaderEnvironment | None = None,
) -> InterfaceSignals:
    """Score *draft* against the predicted reader.

    EG adds 0.4 when a bullet-forward reader gets no bullets and 0.3 for a
    draft over 1800 chars. AR grows with length past 1600 chars and with
    low engagement.
    """
    engagement, pace = environment_baseline(env or ReaderEnvironment())
    bullets_mismatch = (
        0.4
        if "bullet-forward" in prediction.tone_advice and not _BULLET_RE.search(draft)
        else 0.0
    )
    too_long = 0.3 if len(draft) > LONG_DRAFT_CHARS else 0.0
    return InterfaceSignals(
        empathy_gap=_clamp01(bullets_mismatch + too_long),
        engagement=engagement,
        pace=pace,
        attention_risk=_clamp01((len(draft) - 1600) / 2400 + (0.5 - engagement) * 0.4),
    )


# ---------------------------------------------------------------------------
# Rewrites
# ---------------------------------------------------------------------------


def tldr(text: str) -> str:
    """First four non-empty lines."""
    return "\n".join([line for line in text.split("\n") if line][:_TLDR_LINES])


def bullets_first(text: str) -> str:
    return _PARAGRAPH_BREAK_RE.sub("\n\n• ", text)


def tighten(text: str) -> str:
    return _DOUBLE_SPACE_RE.sub(" ", _FILLER_RE.sub("", text)).strip()


def shape_response(
    draft: str,
    prediction: ReaderPrediction,
    signals: InterfaceSignals,
) -> str:
    """Apply the TL;DR, bullets-first and tighten rewrites, in that order."""
    out = draft
    if signals.pace > PACE_TLDR_THRESHOLD or signals.attention_risk > ATTENTION_TLDR_THRESHOLD:
        out = f"TL;DR:\n{tldr(out)}\n\n{out}"
    if "bullet-forward" in prediction.tone_advice:
        out = bullets_first(out)
    if "direct" in prediction.tone_advice:
        out = tighten(out)
    return out


class ResponseShaper:
    """Default pipeline shaper bound to one user model and environment.

    Call it with an answer to get the shaped answer. ``last_signals`` keeps
    the interface signals of the most recent call, and
    :meth:`remember_turn` appends to the session summary.
    """

    def __init__(
        self,
        user: UserModel | None = None,
        environment: ReaderEnvironment | None = None,
    ) -> None:
        self.user = user or UserModel()
        self.environment = environment or ReaderEnvironment()
        self.last_signals: InterfaceSignals | None = None

    def __call__(self, draft: str) -> str:
        prediction = simulate_reader(self.user)
        signals = compute_interface_signals(draft, prediction, self.environment)
        self.last_signals = signals
        shaped = shape_response(draft, prediction, signals)
        logger.debug(
            "shaped answer chars_in=%d chars_out=%d EG=%.2f AR=%.2f",
            len(draft),
            len(shaped),
            signals.empathy_gap,
            signals.attention_risk,
        )
        return shaped

    def remember_turn(self, mode: str) -> None:
        """Append ``Last answer mode=<m>; EG=<eg>`` to the session summary."""
        empathy_gap = self.last_signals.empathy_gap if self.last_signals else 0.0
        entry = f"Last answer mode={mode}; EG={empathy_gap:.2f}"
        summary = f"{self.user.last_summary} {entry}".strip()
        self.user = self.user.model_copy(
            update={"last_summary": summary[-SUMMARY_MAX_CHARS:]}
        )
