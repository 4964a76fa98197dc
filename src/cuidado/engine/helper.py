"""Reasoning-helper escalation: trigger rules, hourly budget and refinement.

When a turn looks uncertain, novel or risky, the local draft can be sent to
a stronger helper model for a rewrite. Calls are capped per rolling hour and
any helper failure falls back to the local draft.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from collections.abc import Sequence
from dataclasses import dataclass

from cuidado.audit import AuditEventType
from cuidado.audit import AuditLogger
from cuidado.config import HelperConfig
from cuidado.engine.llm_adapters import ChatMessage
from cuidado.engine.llm_adapters import ChatModel
from cuidado.engine.llm_adapters import LLMError
from cuidado.engine.schemas import ControlSignals

logger = logging.getLogger(__name__)

ELLIPSIS = "…"
WINDOW_SECONDS = 3600.0

HELPER_SYSTEM_PROMPT = " ".join(
    [
        "You are a senior assistant that refines answers for clarity, factual "
        "care, and succinct structure.",
        "Return ONLY the improved final answer, no reasoning steps. Use "
        "bullets/sections where helpful.",
        "If the question is risky (medical/finance/legal), include a brief "
        "disclaimer and safer alternatives.",
    ]
)


def clip(text: str, limit: int) -> str:
    """Cut *text* to *limit* characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


# ---------------------------------------------------------------------------
# Budget
# ---------------------------------------------------------------------------


class HelperBudget:
    """Rolling hourly call budget.

    A slot is reserved before the helper call and then either committed
    (success) or released (failure), so concurrent turns cannot overshoot
    the cap and failed calls cost nothing.
    """

    def __init__(
        self,
        max_calls_per_hour: int = 30,
        *,
        clock: Callable[[], float] = time.time,
        window_seconds: float = WINDOW_SECONDS,
    ) -> None:
        self._limit = max_calls_per_hour
        self._clock = clock
        self._window_seconds = window_seconds
        self._lock = threading.Lock()
        self._window_start: float | None = None
        self._used = 0
        self._in_flight = 0

    def _roll_window(self) -> None:
        now = self._clock()
        if self._window_start is None or now - self._window_start > self._window_seconds:
            self._window_start = now
            self._used = 0

    @property
    def used(self) -> int:
        with self._lock:
            self._roll_window()
            return self._used

    @property
    def remaining(self) -> int:
        with self._lock:
            self._roll_window()
            return max(0, self._limit - self._used - self._in_flight)

    def try_reserve(self) -> bool:
        with self._lock:
            self._roll_window()
            if self._used + self._in_flight >= self._limit:
                return False
            self._in_flight += 1
            return True

    def commit(self) -> None:
        with self._lock:
            self._roll_window()
            self._in_flight = max(0, self._in_flight - 1)
            self._used += 1

    def release(self) -> None:
        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HelperOutcome:
    """What the gate did for one turn."""

    engaged: bool
    answer: str
    error: str | None = None


class HelperGate:
    def __init__(
        self,
        model: ChatModel | None,
        config: HelperConfig | None = None,
        *,
        budget: HelperBudget | None = None,
        audit: AuditLogger | None = None,
    ) -> None:
        self.config = config or HelperConfig()
        self.model = model
        self.budget = budget or HelperBudget(self.config.max_calls_per_hour)
        self._audit = audit

    def should_engage(self, signals: ControlSignals) -> bool:
        if not self.config.enabled or self.model is None:
            return False
        return (
            signals.uncertainty >= self.config.trigger_uncertainty
            or signals.novelty >= self.config.trigger_novelty
            or signals.value_at_risk >= self.config.trigger_value_at_risk
        )

    def build_messages(
        self,
        task: str,
        context_bullets: Sequence[str],
        local_draft: str,
    ) -> list[ChatMessage]:
        cfg = self.config
        context = "\n".join(list(context_bullets)[: cfg.max_context_bullets])
        parts = [f"Task: {clip(task, cfg.max_chars_in)}"]
        if context:
            parts.append(f"\nContext:\n{clip(context, cfg.max_context_chars)}")
        parts.append(f"\nLocal draft to refine:\n{clip(local_draft, cfg.max_chars_in)}")
        return [
            {"role": "system", "content": HELPER_SYSTEM_PROMPT},
            {"role": "user", "content": "".join(parts)},
        ]

    async def refine(
        self,
        task: str,
        context_bullets: Sequence[str],
        local_draft: str,
    ) -> str:
        """Ask the helper model for an improved final answer.

        Raises ``LLMError`` on any provider failure, including an empty reply.
        """
        if self.model is None:
            raise LLMError("helper model is not configured")
        model_cfg = self.config.model
        answer = await self.model.chat(
            self.build_messages(task, context_bullets, local_draft),
            temperature=model_cfg.temperature,
            top_p=model_cfg.top_p,
            timeout_seconds=model_cfg.timeout_seconds,
        )
        if not answer.strip():
            raise LLMError("helper returned an empty answer")
        return clip(answer, self.config.max_chars_out)

    async def run(
        self,
        signals: ControlSignals,
        task: str,
        context_bullets: Sequence[str],
        local_draft: str,
    ) -> HelperOutcome:
        """Gate, budget and refine; always returns, falling back to the draft."""
        if not self.should_engage(signals):
            return HelperOutcome(engaged=False, answer=local_draft)
        if not self.budget.try_reserve():
            logger.info("helper budget exhausted limit=%d", self.config.max_calls_per_hour)
            return HelperOutcome(engaged=False, answer=local_draft)

        try:
            answer = await self.refine(task, context_bullets, local_draft)
        except LLMError as exc:
            self.budget.release()
            logger.warning("helper fallback error=%s", exc)
            if self._audit is not None:
                await self._audit.emit(
                    AuditEventType.HELPER_FALLBACK,
                    error=str(exc),
                    signals=signals.short(),
                )
            return HelperOutcome(engaged=False, answer=local_draft, error=str(exc))
        except BaseException:
            self.budget.release()
            raise

        self.budget.commit()
        if self._audit is not None:
            await self._audit.emit(
                AuditEventType.HELPER_ENGAGED,
                answer_chars=len(answer),
                remaining=self.budget.remaining,
                signals=signals.short(),
            )
        return HelperOutcome(engaged=True, answer=answer)
