"""Per-turn chat pipeline.

One call to :meth:`ChatPipeline.run_turn` walks a user message through the
safety pre-check, hybrid retrieval, draft generation (with at most one tool
round), signal computation, planning, optional helper refinement, response
shaping and the safety post-check, then persists the outcome and emits an
audit event. Outcome cards and lessons are written only after the terminal
decision, so a cancelled turn leaves nothing behind.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from time import perf_counter
from typing import Any

from cuidado.audit import AuditEventType
from cuidado.audit import AuditLogger
from cuidado.config import ModelConfig
from cuidado.config import PlannerConfig
from cuidado.config import PolicyConfig
from cuidado.config import RetrievalConfig
from cuidado.engine.composer import compose_policy_surface
from cuidado.engine.embeddings import EmbeddingError
from cuidado.engine.embeddings import EmbeddingProvider
from cuidado.engine.helper import HelperGate
from cuidado.engine.helper import HelperOutcome
from cuidado.engine.llm_adapters import ChatMessage
from cuidado.engine.llm_adapters import ChatModel
from cuidado.engine.llm_adapters import LLMError
from cuidado.engine.planner import make_plan
from cuidado.engine.policy import PolicyProvider
from cuidado.engine.policy import StaticPolicyProvider
from cuidado.engine.safety import post_check
from cuidado.engine.safety import pre_check
from cuidado.engine.safety import PRE_CHECK_REFUSAL
from cuidado.engine.schemas import ControlSignals
from cuidado.engine.schemas import PlannerDecision
from cuidado.engine.schemas import TurnResult
from cuidado.engine.shaping import ResponseShaper
from cuidado.engine.signals import compute_signals
from cuidado.engine.signals import SignalInputs
from cuidado.engine.tool_calls import parse_tool_call
from cuidado.engine.tool_calls import ToolCall
from cuidado.engine.tool_calls import ToolRegistry
from cuidado.memory.schemas import OutcomeCard
from cuidado.memory.store import FragmentStore
from cuidado.observability import record_latency
from cuidado.observability import record_turn
from cuidado.observability import timed
from cuidado.retrieval.hybrid import hybrid_retrieve
from cuidado.retrieval.schemas import HybridHit

logger = logging.getLogger(__name__)

Shaper = Callable[[str], str]

TASK_HINT = "General assistant turn with retrieved context."
HELPER_STEP = "reasoning_helper"
LESSON_TAGS = ["lesson", "policy", "safety"]
LESSON_TRUST = 0.6

_TASK_CLIP = 500
_BULLET_CLIP = 280


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def context_lines(hits: list[HybridHit], max_chars: int = 320) -> list[str]:
    """Render hits as ``- (hyb d:0.00 bm:0.00) text`` lines for the prompt."""
    return [
        f"- (hyb d:{hit.dense:.2f} bm:{hit.bm25:.2f}) {_truncate(hit.text, max_chars)}"
        for hit in hits
    ]


class ChatPipeline:
    """Runs chat turns against a fragment store and local models.

    ``last_signals`` keeps the signals of the most recent turn that got as
    far as signal computation, for debug display.
    """

    def __init__(
        self,
        *,
        store: FragmentStore,
        embedder: EmbeddingProvider,
        model: ChatModel,
        model_config: ModelConfig | None = None,
        helper: HelperGate | None = None,
        policy: PolicyProvider | None = None,
        tools: ToolRegistry | None = None,
        audit: AuditLogger | None = None,
        shaper: Shaper | None = None,
        retrieval_config: RetrievalConfig | None = None,
        planner_config: PlannerConfig | None = None,
        policy_config: PolicyConfig | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.model = model
        self.model_config = model_config or ModelConfig()
        self.helper = helper
        self.policy = policy or StaticPolicyProvider()
        self.tools = tools
        self.audit = audit
        self.shaper: Shaper = shaper if shaper is not None else ResponseShaper()
        self.retrieval_config = retrieval_config or RetrievalConfig()
        self.planner_config = planner_config or PlannerConfig()
        self.policy_config = policy_config or PolicyConfig()
        self.last_signals: ControlSignals | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_turn(self, message: str | None, user_criticality: float = 0.0) -> TurnResult:
        start = perf_counter()
        ok = False
        try:
            result = await self._run_turn((message or "").strip(), user_criticality)
            ok = result.status != "error"
            record_turn(
                result.status,
                safety=result.safety,
                helper_engaged=result.helper_engaged,
            )
            return result
        finally:
            record_latency(
                operation="pipeline.turn",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run_turn(self, text: str, user_criticality: float) -> TurnResult:
        if not text:
            return TurnResult(
                status="rejected",
                error_code="empty_message",
                message="message must not be empty",
            )

        pre = pre_check(text)
        pre_ids = [flag.id for flag in pre.flags]
        if not pre.allow:
            await self.store.write_outcome(
                OutcomeCard(
                    task=text[:_TASK_CLIP],
                    outcome="fail",
                    lesson=f"Blocked by safety pre-check: {','.join(pre_ids)}",
                )
            )
            await self._emit(AuditEventType.TURN_BLOCKED, stage="pre_check", safety=pre_ids)
            return TurnResult(
                status="blocked",
                error_code="blocked_request",
                answer=PRE_CHECK_REFUSAL,
                safety=pre_ids,
            )

        try:
            hits = await self._retrieve(text)
        except EmbeddingError as exc:
            return await self._upstream_failure("embedding", exc)

        context_block = ""
        lines = context_lines(hits, self.retrieval_config.context_chars)
        if lines:
            context_block = "[CONTEXT]\n" + "\n".join(lines) + "\n"
        system = compose_policy_surface(
            self.policy.persona(),
            self.policy.constitution(),
            task_hint=TASK_HINT,
            token_budget=self.policy_config.token_budget,
            context_block=context_block,
        )

        try:
            with timed("pipeline.draft"):
                draft = await self._draft(system, text)
        except LLMError as exc:
            return await self._upstream_failure("draft", exc)

        signals = compute_signals(
            SignalInputs(
                user_message=text,
                answer_draft=draft,
                retrieval_scores=[hit.dense for hit in hits],
                tokens_approx=len(draft),
                user_criticality=user_criticality,
            )
        )
        self.last_signals = signals
        decision = make_plan(signals, len(hits), self.planner_config)

        helper_outcome = await self._refine(signals, text, hits, draft)
        if helper_outcome.engaged and HELPER_STEP not in decision.steps:
            decision = decision.model_copy(
                update={"steps": [HELPER_STEP, *decision.steps]}
            )

        with timed("pipeline.shape"):
            shaped = self.shaper(helper_outcome.answer)
        post = post_check(shaped, signals.value_at_risk)
        post_ids = [flag.id for flag in post.flags]
        citations = [hit.id for hit in hits]

        if not post.allow:
            await self.store.write_outcome(
                OutcomeCard(
                    task=text[:_TASK_CLIP],
                    plan=decision.steps,
                    outcome="fail",
                    lesson=f"Blocked by safety post-check: {','.join(post_ids)}",
                    citations=citations,
                    signals=signals,
                )
            )
            await self._emit(
                AuditEventType.TURN_BLOCKED,
                stage="post_check",
                **self._turn_payload(
                    text, system, draft, decision, signals,
                    ["post_block", *post_ids], helper_outcome.engaged,
                ),
            )
            return TurnResult(
                status="blocked",
                error_code="blocked_response",
                answer=post.transformed,
                signals=signals,
                plan=decision,
                context_used=hits,
                safety=post_ids,
                helper_engaged=helper_outcome.engaged,
            )

        answer = post.transformed
        if hits:
            lesson = f"Used {len(hits)} fragments; mode={decision.mode}."
        else:
            lesson = f"No context; mode={decision.mode}."
        await self.store.write_outcome(
            OutcomeCard(
                task=text[:_TASK_CLIP],
                plan=decision.steps,
                outcome="win",
                lesson=lesson,
                citations=citations,
                signals=signals,
            )
        )
        fragment = await self.store.append(
            f"Lesson: mode={decision.mode} U={signals.uncertainty:.2f} "
            f"N={signals.novelty:.2f} V={signals.value_at_risk:.2f}",
            list(LESSON_TAGS),
            LESSON_TRUST,
        )
        await self._emit(AuditEventType.FRAGMENT_APPENDED, fragment_id=fragment.id, tags=fragment.tags)
        if isinstance(self.shaper, ResponseShaper):
            self.shaper.remember_turn(decision.mode)

        safety_ids = [*pre_ids, *post_ids]
        await self._emit(
            AuditEventType.TURN_COMPLETED,
            **self._turn_payload(
                text, system, answer, decision, signals, safety_ids, helper_outcome.engaged
            ),
        )
        return TurnResult(
            status="ok",
            answer=answer,
            signals=signals,
            plan=decision,
            context_used=hits,
            safety=safety_ids,
            helper_engaged=helper_outcome.engaged,
        )

    async def _retrieve(self, text: str) -> list[HybridHit]:
        cfg = self.retrieval_config
        with timed("pipeline.retrieve"):
            fragments = await self.store.list_recent(cfg.candidate_limit)
            fragments = await self.store.backfill_missing_embeddings(fragments, self.embedder)
            vectors = await self.embedder.embed([text])
            if not vectors:
                raise EmbeddingError("embedding provider returned no query vector")
            return hybrid_retrieve(fragments, vectors[0], text, config=cfg)

    async def _draft(self, system: str, text: str) -> str:
        messages: list[ChatMessage] = [
            {"role": "system", "content": system},
            {"role": "user", "content": text},
        ]
        draft = await self._chat(messages)

        call = parse_tool_call(draft)
        if self.tools is None or not isinstance(call, ToolCall):
            return draft

        result = await self.tools.execute(call)
        logger.info("tool round name=%s ok=%s", call.name, result.ok)
        messages.append({"role": "assistant", "content": draft})
        messages.append({"role": "tool", "content": result.to_message()})
        return await self._chat(messages)

    async def _chat(self, messages: list[ChatMessage]) -> str:
        cfg = self.model_config
        return await self.model.chat(
            messages,
            temperature=cfg.temperature,
            top_p=cfg.top_p,
            timeout_seconds=cfg.timeout_seconds,
        )

    async def _refine(
        self,
        signals: ControlSignals,
        text: str,
        hits: list[HybridHit],
        draft: str,
    ) -> HelperOutcome:
        if self.helper is None:
            return HelperOutcome(engaged=False, answer=draft)
        bullets = [f"• {hit.text[:_BULLET_CLIP]}" for hit in hits]
        with timed("pipeline.helper"):
            return await self.helper.run(signals, text, bullets, draft)

    # ------------------------------------------------------------------
    # Failure and audit helpers
    # ------------------------------------------------------------------

    async def _upstream_failure(self, stage: str, exc: Exception) -> TurnResult:
        logger.warning("turn failed stage=%s error=%s", stage, exc)
        await self._emit(AuditEventType.TURN_FAILED, stage=stage, error=str(exc))
        return TurnResult(
            status="error",
            error_code="upstream_unavailable",
            message=f"{stage} backend unavailable: {exc}",
        )

    def _turn_payload(
        self,
        text: str,
        system: str,
        answer: str,
        decision: PlannerDecision,
        signals: ControlSignals,
        safety: list[str],
        helper_engaged: bool,
    ) -> dict[str, Any]:
        model = self.model_config.model + ("+helper" if helper_engaged else "")
        return {
            "model": model,
            "user_chars": len(text),
            "system_chars": len(system),
            "answer_chars": len(answer),
            "plan_mode": decision.mode,
            "steps": decision.steps,
            "signals": signals.short(),
            "safety": safety,
            "helper_engaged": helper_engaged,
        }

    async def _emit(self, event_type: AuditEventType, **payload: Any) -> None:
        if self.audit is not None:
            await self.audit.emit(event_type, **payload)
