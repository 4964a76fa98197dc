"""Unit tests for the helper budget and engagement gate."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from cuidado.audit import AuditEventType
from cuidado.config import HelperConfig
from cuidado.engine import llm_adapters
from cuidado.engine.helper import clip
from cuidado.engine.helper import HELPER_SYSTEM_PROMPT
from cuidado.engine.helper import HelperBudget
from cuidado.engine.helper import HelperGate
from cuidado.engine.llm_adapters import LLMError
from cuidado.engine.llm_adapters import LLMTimeoutError
from cuidado.engine.llm_adapters import OpenAICompatibleChatAdapter
from cuidado.engine.schemas import ControlSignals

from tests.unit.fakes import ScriptedChatModel


@dataclass
class _FakeClock:
    now: float = 1_000.0

    def __call__(self) -> float:
        return self.now


def _signals(u: float = 0.1, n: float = 0.1, v: float = 0.1) -> ControlSignals:
    return ControlSignals(uncertainty=u, novelty=n, stability=0.5, value_at_risk=v)


def _enabled(**overrides) -> HelperConfig:
    return HelperConfig(enabled=True, **overrides)


# ---------------------------------------------------------------------------
# clip
# ---------------------------------------------------------------------------


class TestClip:
    def test_short_text_is_unchanged(self):
        assert clip("abc", 5) == "abc"

    def test_long_text_gets_ellipsis(self):
        assert clip("abcdef", 3) == "abc…"


# ---------------------------------------------------------------------------
# HelperBudget
# ---------------------------------------------------------------------------


class TestHelperBudget:
    def test_cap_is_enforced_within_the_hour(self):
        clock = _FakeClock()
        budget = HelperBudget(30, clock=clock)
        for _ in range(30):
            assert budget.try_reserve()
            budget.commit()
        assert budget.try_reserve() is False
        assert budget.used == 30

    def test_window_rollover_restores_budget(self):
        clock = _FakeClock()
        budget = HelperBudget(2, clock=clock)
        for _ in range(2):
            budget.try_reserve()
            budget.commit()
        clock.now += 3600
        assert budget.try_reserve() is False
        clock.now += 1
        assert budget.try_reserve() is True

    def test_released_reservation_costs_nothing(self):
        budget = HelperBudget(1, clock=_FakeClock())
        assert budget.try_reserve()
        budget.release()
        assert budget.used == 0
        assert budget.try_reserve()

    def test_in_flight_reservations_count_against_cap(self):
        budget = HelperBudget(2, clock=_FakeClock())
        assert budget.try_reserve()
        assert budget.try_reserve()
        assert budget.try_reserve() is False
        assert budget.remaining == 0


# ---------------------------------------------------------------------------
# HelperGate
# ---------------------------------------------------------------------------


class TestShouldEngage:
    def test_disabled_never_engages(self):
        gate = HelperGate(ScriptedChatModel(), HelperConfig(enabled=False))
        assert gate.should_engage(_signals(u=1.0, n=1.0, v=1.0)) is False

    def test_missing_model_never_engages(self):
        gate = HelperGate(None, _enabled())
        assert gate.should_engage(_signals(u=1.0)) is False

    @pytest.mark.parametrize(
        ("signals", "expected"),
        [
            (_signals(u=0.65), True),
            (_signals(n=0.65), True),
            (_signals(v=0.55), True),
            (_signals(u=0.64, n=0.64, v=0.54), False),
        ],
    )
    def test_triggers(self, signals, expected):
        gate = HelperGate(ScriptedChatModel(), _enabled())
        assert gate.should_engage(signals) is expected


class TestBuildMessages:
    def test_prompt_layout(self):
        gate = HelperGate(ScriptedChatModel(), _enabled())
        messages = gate.build_messages("Explain X", ["• one", "• two"], "draft text")
        assert messages[0] == {"role": "system", "content": HELPER_SYSTEM_PROMPT}
        assert messages[1]["content"] == (
            "Task: Explain X\nContext:\n• one\n• two\nLocal draft to refine:\ndraft text"
        )

    def test_context_section_is_omitted_when_empty(self):
        gate = HelperGate(ScriptedChatModel(), _enabled())
        content = gate.build_messages("T", [], "D")[1]["content"]
        assert "Context:" not in content

    def test_only_first_bullets_are_sent_and_clipped(self):
        gate = HelperGate(
            ScriptedChatModel(), _enabled(max_context_bullets=2, max_context_chars=5)
        )
        content = gate.build_messages("T", ["aaaa", "bbbb", "cccc"], "D")[1]["content"]
        assert "\nContext:\naaaa\n…" in content
        assert "cccc" not in content


class TestRun:
    async def test_successful_refinement_consumes_budget(self, audit_logger):
        model = ScriptedChatModel(replies=["refined answer"])
        gate = HelperGate(model, _enabled(), audit=audit_logger)
        outcome = await gate.run(_signals(u=0.9), "task", ["• ctx"], "draft")
        assert outcome.engaged is True
        assert outcome.answer == "refined answer"
        assert gate.budget.used == 1
        assert model.kwargs[0]["temperature"] == 0.5
        events = await audit_logger.read_events(event_type=AuditEventType.HELPER_ENGAGED)
        assert len(events) == 1

    async def test_output_is_clipped(self):
        model = ScriptedChatModel(replies=["x" * 20])
        gate = HelperGate(model, _enabled(max_chars_out=10))
        outcome = await gate.run(_signals(u=0.9), "task", [], "draft")
        assert outcome.answer == "x" * 10 + "…"

    async def test_not_eligible_returns_draft_without_calling(self):
        model = ScriptedChatModel()
        gate = HelperGate(model, _enabled())
        outcome = await gate.run(_signals(), "task", [], "draft")
        assert outcome.engaged is False
        assert outcome.answer == "draft"
        assert model.calls == []

    @pytest.mark.parametrize(
        "failure",
        [LLMError("provider HTTP 500", status=500), LLMTimeoutError("deadline"), ""],
    )
    async def test_failure_falls_back_to_draft(self, failure, audit_logger, caplog):
        model = ScriptedChatModel(replies=[failure])
        gate = HelperGate(model, _enabled(), audit=audit_logger)
        with caplog.at_level("WARNING", logger="cuidado.engine.helper"):
            outcome = await gate.run(_signals(v=0.9), "task", [], "draft")
        assert outcome.engaged is False
        assert outcome.answer == "draft"
        assert outcome.error
        assert gate.budget.used == 0
        assert "helper fallback" in caplog.text
        events = await audit_logger.read_events(event_type=AuditEventType.HELPER_FALLBACK)
        assert len(events) == 1

    async def test_exhausted_budget_skips_helper(self):
        model = ScriptedChatModel(replies=["one", "two"])
        budget = HelperBudget(1, clock=_FakeClock())
        gate = HelperGate(model, _enabled(), budget=budget)
        first = await gate.run(_signals(u=0.9), "task", [], "draft")
        second = await gate.run(_signals(u=0.9), "task", [], "draft")
        assert first.engaged is True
        assert second.engaged is False
        assert second.answer == "draft"
        assert len(model.calls) == 1


class _BinaryResponse:
    def __init__(self, body: bytes) -> None:
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> _BinaryResponse:
        return self

    def __exit__(self, *exc) -> None:
        return None


class TestHttpHelperFallback:
    async def test_undecodable_reply_falls_back_to_draft(self, monkeypatch):
        monkeypatch.setattr(
            llm_adapters,
            "urlopen",
            lambda request, timeout: _BinaryResponse(b"\xff\xfe\x00garbage"),
        )
        gate = HelperGate(
            OpenAICompatibleChatAdapter(model="gpt-4o-mini", api_key="k"), _enabled()
        )
        outcome = await gate.run(_signals(n=0.9), "task", ["• ctx"], "draft")
        assert outcome.engaged is False
        assert outcome.answer == "draft"
        assert "invalid JSON" in outcome.error
        assert gate.budget.used == 0

    async def test_http_reply_is_used(self, monkeypatch):
        seen: dict = {}

        def _urlopen(request, timeout):
            seen["timeout"] = timeout
            return _BinaryResponse(b'{"choices": [{"message": {"content": "better"}}]}')

        monkeypatch.setattr(llm_adapters, "urlopen", _urlopen)
        gate = HelperGate(
            OpenAICompatibleChatAdapter(model="gpt-4o-mini", api_key="k"), _enabled()
        )
        outcome = await gate.run(_signals(n=0.9), "task", [], "draft")
        assert outcome.engaged is True
        assert outcome.answer == "better"
        assert seen["timeout"] == HelperConfig().model.timeout_seconds
