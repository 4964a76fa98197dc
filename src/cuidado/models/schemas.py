"""Pydantic models for the MCP tool inputs and results.

Input models validate tool arguments; output models shape responses.
FastMCP serializes the output models automatically.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic import Field

from cuidado.engine.schemas import ControlSignals
from cuidado.memory.schemas import Fragment
from cuidado.memory.schemas import OutcomeCard
from cuidado.retrieval.schemas import HybridHit

# ---------------------------------------------------------------------------
# Input models
# ---------------------------------------------------------------------------


class ChatInput(BaseModel):
    """Input for the chat tool."""

    message: str = Field(
        description="User message for this turn.",
    )
    user_criticality: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="External weight on how much is at stake for the user.",
    )


class RememberInput(BaseModel):
    """Input for the remember tool."""

    text: str = Field(
        min_length=1,
        description="Note, lesson or fact to store as a fragment.",
    )
    tags: list[str] = Field(
        default_factory=list,
        description="Free-form labels, e.g. 'lesson' or 'policy'.",
    )
    trust: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Trust score attached to the fragment.",
    )
    source: str | None = Field(
        default=None,
        description="Optional provenance label.",
    )


class RecallInput(BaseModel):
    """Input for the recall tool."""

    query: str = Field(
        min_length=1,
        description="Natural language query.",
    )
    k: int = Field(
        default=6,
        ge=1,
        le=50,
        description="Maximum number of fused hits to return.",
    )


# ---------------------------------------------------------------------------
# Output models
# ---------------------------------------------------------------------------


class RememberResult(BaseModel):
    """Output of the remember tool."""

    fragment_id: str = Field(
        description="Identifier of the stored fragment; empty when rejected.",
    )
    status: str = Field(
        default="accepted",
        description="Ingestion status (accepted, rejected).",
    )
    error_code: str | None = None
    message: str | None = None


class RecallResult(BaseModel):
    """Output of the recall tool."""

    status: str = Field(
        default="ok",
        description="Outcome status (ok, error).",
    )
    error_code: str | None = None
    message: str | None = None
    hits: list[HybridHit] = Field(
        default_factory=list,
        description="Fused hits with dense and BM25 sub-scores.",
    )


class OutcomesResult(BaseModel):
    """Output of the recent_outcomes tool."""

    status: str = "ok"
    outcomes: list[OutcomeCard] = Field(
        default_factory=list,
        description="Newest outcome cards first.",
    )


class LessonsResult(BaseModel):
    """Output of the recent_lessons tool."""

    status: str = "ok"
    lessons: list[Fragment] = Field(
        default_factory=list,
        description="Newest lesson-tagged fragments first.",
    )


class TurnStatsResult(BaseModel):
    """Output of the turn_stats tool."""

    status: str = "ok"
    stages: dict[str, dict[str, float | int]] = Field(
        default_factory=dict,
        description="Latency per pipeline stage and tool: count, error_count, avg_ms, max_ms.",
    )
    turns: dict[str, Any] = Field(
        default_factory=dict,
        description="Finished turns: total, by_status, helper_engaged, safety_flags.",
    )
    last_signals: ControlSignals | None = Field(
        default=None,
        description="Signals of the most recent turn that reached signal computation.",
    )
