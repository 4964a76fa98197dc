"""MCP interface models."""

from cuidado.models.schemas import ChatInput
from cuidado.models.schemas import LessonsResult
from cuidado.models.schemas import OutcomesResult
from cuidado.models.schemas import RecallInput
from cuidado.models.schemas import RecallResult
from cuidado.models.schemas import RememberInput
from cuidado.models.schemas import RememberResult
from cuidado.models.schemas import TurnStatsResult

__all__ = [
    "ChatInput",
    "LessonsResult",
    "OutcomesResult",
    "RecallInput",
    "RecallResult",
    "RememberInput",
    "RememberResult",
    "TurnStatsResult",
]
