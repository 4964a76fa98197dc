"""Single-shot tool calls embedded in model output.

A draft may consist of a JSON object ``{"tool_call": {"name": ..., "args":
{...}}}``. :func:`parse_tool_call` extracts it into a tagged result without
ever raising, and :class:`ToolRegistry` runs the built-in tools.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from collections.abc import Awaitable
from collections.abc import Callable
from datetime import datetime
from datetime import timezone
from typing import Any
from typing import Literal
from typing import TYPE_CHECKING

from pydantic import BaseModel
from pydantic import Field

from cuidado.retrieval.lexical import bm25_top_k

if TYPE_CHECKING:
    from cuidado.memory.store import FragmentStore

logger = logging.getLogger(__name__)

_TOOL_CALL_START_RE = re.compile(r'\{\s*"tool_call"\s*:')
_decoder = json.JSONDecoder()

LESSON_SCAN_LIMIT = 300
DEFAULT_LESSON_K = 5


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["tool_call"] = "tool_call"
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class NoToolCall(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["none"] = "none"


def parse_tool_call(text: str) -> ToolCall | NoToolCall:
    """Return the first well-formed tool call in *text*, else ``NoToolCall``."""
    for match in _TOOL_CALL_START_RE.finditer(text):
        try:
            obj, _ = _decoder.raw_decode(text, match.start())
        except ValueError:
            continue
        call = obj.get("tool_call") if isinstance(obj, dict) else None
        if not isinstance(call, dict):
            continue
        name = call.get("name")
        args = call.get("args")
        if isinstance(name, str) and name.strip() and isinstance(args, dict):
            return ToolCall(name=name.strip(), args=args)
    return NoToolCall()


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ToolResult(BaseModel):
    ok: bool
    result: Any = None
    error: str | None = None

    def to_message(self) -> str:
        """JSON body fed back to the model as the tool message."""
        if self.ok:
            return json.dumps({"tool_result": self.result}, default=str)
        return json.dumps({"tool_error": self.error})


ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ToolRegistry:
    """Built-in tools: ``now``, ``uuid``, ``sum`` and ``search_lessons``."""

    def __init__(self, store: FragmentStore | None = None) -> None:
        self._store = store
        self._handlers: dict[str, ToolHandler] = {
            "now": self._now,
            "uuid": self._uuid,
            "sum": self._sum,
            "search_lessons": self._search_lessons,
        }

    @property
    def names(self) -> list[str]:
        return sorted(self._handlers)

    async def execute(self, call: ToolCall) -> ToolResult:
        handler = self._handlers.get(call.name)
        if handler is None:
            return ToolResult(ok=False, error="unknown tool")
        try:
            result = await handler(call.args)
        except (TypeError, ValueError) as exc:
            logger.info("tool rejected name=%s error=%s", call.name, exc)
            return ToolResult(ok=False, error=str(exc))
        logger.debug("tool executed name=%s", call.name)
        return ToolResult(ok=True, result=result)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _now(self, args: dict[str, Any]) -> str:
        return datetime.now(timezone.utc).isoformat()

    async def _uuid(self, args: dict[str, Any]) -> str:
        return str(uuid.uuid4())

    async def _sum(self, args: dict[str, Any]) -> float:
        nums = args.get("nums")
        if not isinstance(nums, list) or not nums:
            raise ValueError("nums array required with at least one number")
        if not all(_is_number(n) for n in nums):
            raise TypeError("nums must contain numbers only")
        return sum(nums)

    async def _search_lessons(self, args: dict[str, Any]) -> list[dict[str, Any]]:
        query = args.get("query")
        if not isinstance(query, str) or not query.strip():
            raise ValueError("query string required")
        k = args.get("k", DEFAULT_LESSON_K)
        if not isinstance(k, int) or isinstance(k, bool) or k <= 0:
            raise ValueError("k must be a positive integer")
        if self._store is None:
            raise ValueError("no fragment store configured")

        fragments = await self._store.list_recent(LESSON_SCAN_LIMIT)
        timestamps = {f.id: f.timestamp for f in fragments}
        return [
            {
                "id": hit.id,
                "timestamp": timestamps.get(hit.id, 0.0),
                "text": hit.text,
                "tags": hit.tags,
                "score": hit.score,
            }
            for hit in bm25_top_k(fragments, query, k)
        ]
