"""Unit tests for the mode planner."""

from __future__ import annotations

import pytest

from cuidado.config import PlannerConfig
from cuidado.engine.planner import FAST_RATIONALE
from cuidado.engine.planner import make_plan
from cuidado.engine.planner import THOUGHTFUL_RATIONALE
from cuidado.engine.schemas import ControlSignals


def _signals(u: float = 0.1, n: float = 0.1, v: float = 0.1) -> ControlSignals:
    return ControlSignals(uncertainty=u, novelty=n, stability=0.8, value_at_risk=v)


class TestMakePlan:
    def test_fast_when_all_signals_low(self):
        plan = make_plan(_signals(), evidence_count=3)
        assert plan.mode == "fast"
        assert plan.steps == ["retrieve", "compose_policy_surface", "direct_answer"]
        assert plan.rationale == FAST_RATIONALE

    def test_high_uncertainty_adds_reflect_pass(self):
        plan = make_plan(_signals(u=0.6))
        assert plan.mode == "thoughtful"
        assert plan.steps == [
            "retrieve_broaden",
            "compose_policy_surface",
            "structure_first",
            "direct_answer",
            "reflect_pass",
        ]
        assert plan.rationale == THOUGHTFUL_RATIONALE

    def test_high_value_at_risk_adds_disclaimer(self):
        plan = make_plan(_signals(v=0.5))
        assert plan.steps == [
            "retrieve_broaden",
            "compose_policy_surface",
            "structure_first",
            "add_disclaimer",
            "direct_answer",
        ]

    def test_high_novelty_alone_is_thoughtful_without_extras(self):
        plan = make_plan(_signals(n=0.55))
        assert plan.mode == "thoughtful"
        assert "add_disclaimer" not in plan.steps
        assert "reflect_pass" not in plan.steps

    def test_thoughtful_structures_before_answering(self):
        plan = make_plan(_signals(u=0.9, n=0.9, v=0.9))
        assert plan.steps.index("structure_first") < plan.steps.index("direct_answer")

    def test_mode_is_monotonic_in_uncertainty(self):
        modes = [make_plan(_signals(u=i / 20)).mode for i in range(21)]
        first_thoughtful = modes.index("thoughtful")
        assert first_thoughtful == 11  # u = 0.55
        assert all(m == "thoughtful" for m in modes[first_thoughtful:])
        assert all(m == "fast" for m in modes[:first_thoughtful])

    @pytest.mark.parametrize("u", [0.3, 0.4])
    def test_thresholds_are_configurable(self, u):
        config = PlannerConfig(uncertainty_threshold=0.3)
        assert make_plan(_signals(u=u), config=config).mode == "thoughtful"
