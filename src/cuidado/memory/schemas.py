"""Memory domain data models."""

from __future__ import annotations

import time
import uuid
from typing import Literal

from pydantic import BaseModel
from pydantic import Field

from cuidado.engine.schemas import ControlSignals


class Fragment(BaseModel):
    """A unit of retrievable memory."""

    id: str = Field(
        default_factory=lambda: f"frag_{uuid.uuid4().hex}",
        description="Unique identifier, auto-generated as frag_{uuid4_hex}.",
    )
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix epoch when the fragment was created.",
    )
    text: str = Field(
        description="Raw textual content; immutable once stored.",
    )
    tags: list[str] = Field(
        default_factory=list,
        description="Free-form labels such as 'lesson' or 'policy'.",
    )
    source: str | None = Field(
        default=None,
        description="Optional provenance label.",
    )
    trust: float = Field(
        default=0.6,
        description="Trust score attached at creation time.",
    )
    embedding: list[float] = Field(
        default_factory=list,
        description="Dense vector; empty means not yet embedded.",
    )

    @property
    def is_embedded(self) -> bool:
        return bool(self.embedding)


class OutcomeCard(BaseModel):
    """Persisted record of one finished chat turn."""

    id: str = Field(
        default_factory=lambda: f"out_{uuid.uuid4().hex}",
        description="Unique identifier, auto-generated as out_{uuid4_hex}.",
    )
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix epoch when the turn reached its terminal decision.",
    )
    task: str = Field(
        description="User message, clipped to 500 characters.",
    )
    plan: list[str] = Field(
        default_factory=list,
        description="Planner steps executed for the turn.",
    )
    outcome: Literal["win", "fail"] = Field(
        description="'win' for a delivered answer, 'fail' for a safety block.",
    )
    lesson: str = Field(
        description="One-line summary of what the turn taught.",
    )
    citations: list[str] = Field(
        default_factory=list,
        description="Identifiers of fragments used as evidence.",
    )
    signals: ControlSignals | None = Field(
        default=None,
        description="Control signals computed for the turn.",
    )


def create_fragment(
    text: str,
    *,
    tags: list[str] | None = None,
    trust: float = 0.6,
    source: str | None = None,
) -> Fragment:
    """Factory for a new, not-yet-embedded ``Fragment``.

    Strips the text, drops blank and duplicate tags (keeping first-seen
    order) and rejects empty text or a trust outside [0, 1].
    """
    cleaned = text.strip()
    if not cleaned:
        raise ValueError("fragment text must not be empty")
    if not 0.0 <= trust <= 1.0:
        raise ValueError(f"trust must be within [0, 1], got {trust}")

    unique_tags: list[str] = []
    for tag in tags or []:
        tag = tag.strip()
        if tag and tag not in unique_tags:
            unique_tags.append(tag)

    return Fragment(text=cleaned, tags=unique_tags, trust=trust, source=source)
