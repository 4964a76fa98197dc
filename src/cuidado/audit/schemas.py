"""Audit event types and the event record."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field


class AuditEventType(str, Enum):
    """Fixed points in the chat pipeline that produce an audit record."""

    TURN_COMPLETED = "TURN_COMPLETED"
    TURN_BLOCKED = "TURN_BLOCKED"
    TURN_FAILED = "TURN_FAILED"
    HELPER_ENGAGED = "HELPER_ENGAGED"
    HELPER_FALLBACK = "HELPER_FALLBACK"
    FRAGMENT_APPENDED = "FRAGMENT_APPENDED"


class AuditEvent(BaseModel):
    model_config = {"frozen": True}

    timestamp: float = Field(
        default_factory=time.time,
        description="Unix epoch when the event was recorded.",
    )
    event_type: AuditEventType = Field(
        description="Pipeline point that produced the event.",
    )
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Event data: character counts, plan, U/N/S/V, flag ids.",
    )
