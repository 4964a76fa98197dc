"""Maps control signals to a response strategy."""

from __future__ import annotations

from cuidado.config import PlannerConfig
from cuidado.engine.schemas import ControlSignals
from cuidado.engine.schemas import PlannerDecision

FAST_RATIONALE = "Confidence adequate; low risk; deliver concise answer."
THOUGHTFUL_RATIONALE = "High uncertainty/novelty/risk; use structure and checks."


def make_plan(
    signals: ControlSignals,
    evidence_count: int = 0,
    config: PlannerConfig | None = None,
) -> PlannerDecision:
    """Choose fast or thoughtful mode and the ordered steps for it.

    *evidence_count* is accepted for callers that track it; the current
    rules depend on the signals only.
    """
    del evidence_count
    cfg = config or PlannerConfig()
    high_u = signals.uncertainty >= cfg.uncertainty_threshold
    high_n = signals.novelty >= cfg.novelty_threshold
    high_v = signals.value_at_risk >= cfg.value_at_risk_threshold

    if not (high_u or high_n or high_v):
        return PlannerDecision(
            mode="fast",
            steps=["retrieve", "compose_policy_surface", "direct_answer"],
            rationale=FAST_RATIONALE,
        )

    steps = ["retrieve_broaden", "compose_policy_surface", "structure_first"]
    if high_v:
        steps.append("add_disclaimer")
    steps.append("direct_answer")
    if high_u:
        steps.append("reflect_pass")
    return PlannerDecision(mode="thoughtful", steps=steps, rationale=THOUGHTFUL_RATIONALE)
