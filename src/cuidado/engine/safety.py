"""Pattern-based safety gate run before and after generation.

The classifier is deliberately small and conservative. ``pre_check`` screens
the user message; ``post_check`` screens the shaped answer, replacing it with
a refusal when it carries unsafe technical detail and otherwise attaching a
disclaimer footer when value-at-risk is high.
"""

from __future__ import annotations

import logging
import re

from cuidado.engine.schemas import PostCheckResult
from cuidado.engine.schemas import PreCheckResult
from cuidado.engine.schemas import SafetyFlag

logger = logging.getLogger(__name__)

SELF_HARM_RE = re.compile(
    r"\b(kill myself|suicide|self\s*-?harm|end my life)\b", re.IGNORECASE
)
WEAPONS_RE = re.compile(
    r"\b(explosive|bomb|improvised explosive|manufacture gun|ghost gun|silencer"
    r"|detonator)\b",
    re.IGNORECASE,
)
CRIME_RE = re.compile(
    r"\b(hack(?:ing)?\b|bypass(?:ing)?\b|crack password|credential stuffing"
    r"|carding)\b",
    re.IGNORECASE,
)
MEDICAL_RE = re.compile(
    r"\b(dosage|prescription|diagnos(e|is)|treat|contraindication"
    r"|drug interaction)\b",
    re.IGNORECASE,
)
FINANCE_RE = re.compile(
    r"\b(insider trading|guaranteed returns|get rich quick|pump and dump)\b",
    re.IGNORECASE,
)

_HAS_DISCLAIMER_RE = re.compile(
    r"^(?=.*disclaimer)|^(?=.*consult)", re.IGNORECASE | re.MULTILINE
)

PRE_CHECK_REFUSAL = (
    "I can't assist with that. If you want, I can share high-level safety "
    "information or alternatives."
)
POST_CHECK_REFUSAL = (
    "I can't help with that. I can offer high-level safety information or "
    "alternatives if that helps."
)
DISCLAIMER_FOOTER = (
    "\n\nDisclaimer: This is not professional advice. Consider consulting a "
    "qualified professional for your situation."
)

HIGH_VAR_THRESHOLD = 0.5

# (pattern, flag) pairs in evaluation order.
_PRE_CHECK_RULES: tuple[tuple[re.Pattern[str], SafetyFlag], ...] = (
    (SELF_HARM_RE, SafetyFlag(id="self_harm", level="block", reason="self-harm intent")),
    (WEAPONS_RE, SafetyFlag(id="weapons", level="block", reason="weapon construction")),
    (CRIME_RE, SafetyFlag(id="crime", level="block", reason="criminal facilitation")),
    (MEDICAL_RE, SafetyFlag(id="medical_risk", level="warn", reason="medical guidance")),
    (FINANCE_RE, SafetyFlag(id="finance_risk", level="warn", reason="financial guidance")),
)


def pre_check(text: str) -> PreCheckResult:
    flags = [flag for pattern, flag in _PRE_CHECK_RULES if pattern.search(text)]
    allow = not any(flag.level == "block" for flag in flags)
    if not allow:
        logger.info(
            "safety pre_check blocked flags=%s", ",".join(f.id for f in flags)
        )
    return PreCheckResult(allow=allow, flags=flags)


def post_check(answer: str, value_at_risk: float) -> PostCheckResult:
    """Screen a shaped answer.

    A high value-at-risk is always flagged. Unsafe detail then wins over
    everything else: the answer is replaced by a fixed refusal and no
    disclaimer is attached.
    """
    flags: list[SafetyFlag] = []
    transformed = answer
    if value_at_risk >= HIGH_VAR_THRESHOLD:
        flags.append(SafetyFlag(id="high_var", level="warn", reason="value-at-risk high"))
        if not _HAS_DISCLAIMER_RE.search(answer):
            transformed = answer + DISCLAIMER_FOOTER

    if WEAPONS_RE.search(answer) or CRIME_RE.search(answer):
        logger.info("safety post_check redacted answer_chars=%d", len(answer))
        flags.append(
            SafetyFlag(
                id="redacted_detail",
                level="block",
                reason="unsafe technical detail",
            )
        )
        return PostCheckResult(allow=False, flags=flags, transformed=POST_CHECK_REFUSAL)

    return PostCheckResult(allow=True, flags=flags, transformed=transformed)
