"""Persona and constitution text providers."""

from __future__ import annotations

from typing import Any
from typing import Protocol
from typing import runtime_checkable

from pydantic import BaseModel
from pydantic import Field


class Persona(BaseModel):
    """Voice and formatting preferences for the assistant."""

    tone: str = "calm, precise"
    format_prefs: dict[str, Any] = Field(default_factory=dict)
    brand_lexicon: list[str] = Field(default_factory=list)


class Constitution(BaseModel):
    """Ordered principles rendered into the instruction surface."""

    principles: list[str] = Field(default_factory=list)


@runtime_checkable
class PolicyProvider(Protocol):
    def persona(self) -> Persona: ...

    def constitution(self) -> Constitution: ...


class StaticPolicyProvider(PolicyProvider):
    """In-memory policy, used by default and in tests."""

    def __init__(
        self,
        persona: Persona | None = None,
        constitution: Constitution | None = None,
    ) -> None:
        self._persona = persona or Persona()
        self._constitution = constitution or Constitution()

    def persona(self) -> Persona:
        return self._persona

    def constitution(self) -> Constitution:
        return self._constitution
