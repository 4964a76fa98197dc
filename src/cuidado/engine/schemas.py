"""Pydantic models shared by the signal, planning and safety engines."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel
from pydantic import Field

from cuidado.retrieval.schemas import HybridHit

PlanMode = Literal["fast", "thoughtful"]
FlagLevel = Literal["info", "warn", "block"]
TurnStatus = Literal["ok", "blocked", "rejected", "error"]


class ControlSignals(BaseModel):
    """Per-turn control state; every dimension lives in [0, 1]."""

    model_config = {"frozen": True}

    uncertainty: float = Field(ge=0.0, le=1.0, description="U: weak grounding or hedging.")
    novelty: float = Field(ge=0.0, le=1.0, description="N: unfamiliar request.")
    stability: float = Field(ge=0.0, le=1.0, description="S: strong, unhedged support.")
    value_at_risk: float = Field(
        ge=0.0, le=1.0, description="V: downside risk of the exchange."
    )

    def short(self) -> dict[str, float]:
        """Return the compact U/N/S/V mapping used in audit payloads."""
        return {
            "U": round(self.uncertainty, 4),
            "N": round(self.novelty, 4),
            "S": round(self.stability, 4),
            "V": round(self.value_at_risk, 4),
        }


class PlannerDecision(BaseModel):
    """Execution strategy chosen for a turn."""

    mode: PlanMode
    steps: list[str] = Field(default_factory=list)
    rationale: str | None = None


class SafetyFlag(BaseModel):
    """A single classifier finding."""

    model_config = {"frozen": True}

    id: str = Field(description="Category, e.g. 'self_harm' or 'medical_risk'.")
    level: FlagLevel
    reason: str


class PreCheckResult(BaseModel):
    """Outcome of screening a user message before generation."""

    allow: bool
    flags: list[SafetyFlag] = Field(default_factory=list)


class PostCheckResult(BaseModel):
    """Outcome of screening a shaped answer after generation."""

    allow: bool
    flags: list[SafetyFlag] = Field(default_factory=list)
    transformed: str


class UserModel(BaseModel):
    """What the assistant knows about its reader's style and goals."""

    traits: list[str] = Field(
        default_factory=lambda: ["direct", "builder", "design-driven"],
        description="Reader traits; 'direct' tightens wording.",
    )
    values: list[str] = Field(default_factory=lambda: ["clarity", "craft", "speed"])
    goals: list[str] = Field(default_factory=lambda: ["ship usable things"])
    style_prefs: list[str] = Field(
        default_factory=lambda: ["bullets", "code-first", "no-fluff"],
        description="Style preferences; 'bullets' and 'code-first' are recognised.",
    )
    last_summary: str = Field(
        default="",
        description="Running session summary, one entry per delivered turn.",
    )


class ReaderEnvironment(BaseModel):
    """Ambient reading conditions (movement, speech, distraction)."""

    speaking: bool = False
    energy: float = Field(default=0.4, ge=0.0, le=1.0)
    movement: Literal["stationary", "walking", "driving", "unknown"] = "unknown"
    distraction: Literal["low", "medium", "high"] = "low"


class ReaderPrediction(BaseModel):
    """Predicted reading needs for the current answer."""

    cognition: list[str] = Field(default_factory=list)
    desired_outcome: list[str] = Field(default_factory=list)
    tone_advice: list[str] = Field(
        default_factory=list,
        description="Shaping hints: 'bullet-forward' or 'paragraph', 'direct' or 'warm'.",
    )


class InterfaceSignals(BaseModel):
    """Reader-facing signals; every dimension lives in [0, 1]."""

    model_config = {"frozen": True}

    empathy_gap: float = Field(ge=0.0, le=1.0, description="EG: answer form vs reader needs.")
    engagement: float = Field(ge=0.0, le=1.0, description="EN: attention on the assistant.")
    pace: float = Field(ge=0.0, le=1.0, description="PC: 1 means short and quick.")
    attention_risk: float = Field(ge=0.0, le=1.0, description="AR: risk of losing the reader.")


class TurnResult(BaseModel):
    """Structured response for one chat turn, whatever its terminal state."""

    status: TurnStatus = "ok"
    error_code: str | None = None
    message: str | None = None
    answer: str = ""
    signals: ControlSignals | None = None
    plan: PlannerDecision | None = None
    context_used: list[HybridHit] = Field(default_factory=list)
    safety: list[str] = Field(
        default_factory=list,
        description="Identifiers of safety flags raised during the turn.",
    )
    helper_engaged: bool = False
