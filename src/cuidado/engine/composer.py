"""Builds the system instruction surface sent with every draft request."""

from __future__ import annotations

import json
import math

from cuidado.engine.policy import Constitution
from cuidado.engine.policy import Persona
from cuidado.engine.schemas import ControlSignals
from cuidado.engine.schemas import PlanMode

CHARS_PER_TOKEN = 4
DEFAULT_CONSTITUTION = "1. Be helpful, honest, transparent.\n2. Respect safety."

TOOLS_CONTRACT = """
[TOOLS]
You may request a SINGLE tool call when it would materially improve usefulness (facts, math, fresh context, or personalization).
If you decide to use a tool, reply with ONLY this JSON (no prose, no backticks, no comments):
{"tool_call":{"name":"<tool_name>","args":{...}}}

Strict formatting rules:
- Output exactly one JSON object.
- Keys: "tool_call" -> { "name": string, "args": object }.
- No trailing commas, no extra fields, no markdown code fences.
- Numbers must be numbers (not strings).
- If a tool is unnecessary, do NOT call it. Just answer normally.

Available tools:
- "now": returns current ISO time. args: {}
- "uuid": returns a random UUID v4. args: {}
- "sum": sums a list of numbers. args: {"nums":[number,...]} (at least one item)
- "search_lessons": keyword search over recent micro-lessons. args: {"query": string, "k"?: number}

[TOOL RESULT HANDLING]
- After a tool call you will receive a tool result message (JSON). Integrate it and produce the FINAL user-facing answer.
- Do NOT emit another tool_call JSON.
- If a tool returns an error, continue without it and state the limitation briefly.
"""


def _fmt(value: float) -> str:
    return f"{value:.2f}" if math.isfinite(value) else "?"


def _signal_line(signals: ControlSignals | None) -> str:
    if signals is None:
        return "U=? N=? S=? V=?"
    return (
        f"U={_fmt(signals.uncertainty)} N={_fmt(signals.novelty)} "
        f"S={_fmt(signals.stability)} V={_fmt(signals.value_at_risk)}"
    )


def compose_policy_surface(
    persona: Persona,
    constitution: Constitution,
    *,
    task_hint: str | None = None,
    token_budget: int = 1800,
    signals: ControlSignals | None = None,
    mode: PlanMode | None = None,
    context_block: str | None = None,
) -> str:
    """Render persona, principles, control hints and context into one prompt.

    The result is hard-truncated to ``token_budget * 4`` characters.
    """
    persona_block = "\n".join(
        [
            f"TONE: {persona.tone}",
            f"FORMAT_PREFS: {json.dumps(persona.format_prefs)}",
            f"LEXICON: {json.dumps(persona.brand_lexicon)}",
        ]
    )
    if constitution.principles:
        constitution_block = "\n".join(
            f"{i}. {p}" for i, p in enumerate(constitution.principles, start=1)
        )
    else:
        constitution_block = DEFAULT_CONSTITUTION

    mode_line = f"MODE: {mode}" if mode else ""
    task = f"\n[TASK_HINT]\n{task_hint}" if task_hint else ""
    context = f"\n{context_block}" if context_block else ""

    surface = (
        f"[PERSONA]\n{persona_block}\n\n"
        f"[CONSTITUTION]\n{constitution_block}\n\n"
        f"[CONTROL HINTS]\n{mode_line}\n"
        f"SIGNALS: {_signal_line(signals)}\n"
        "Guidance:\n"
        "- If V is high, include a short disclaimer and safer alternatives.\n"
        "- If U or N are high, structure first (outline/bullets) before final prose.\n\n"
        "[OUTPUT CONTRACT]\n"
        "- Be concise and accurate.\n"
        "- If asserting non-obvious facts, explain plainly.\n"
        "- Prefer bullets when brevity or pace is high.\n"
        f"{TOOLS_CONTRACT}\n"
        f"{task}{context}\n"
    )

    max_chars = token_budget * CHARS_PER_TOKEN
    if len(surface) > max_chars:
        surface = surface[:max_chars]
    return surface
