"""Append-only JSONL audit log."""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cuidado.audit.schemas import AuditEvent
from cuidado.audit.schemas import AuditEventType
from cuidado.config import AuditConfig

logger = logging.getLogger(__name__)


class AuditLogger:
    """Serialises audit events to a JSONL file off the event loop.

    File I/O runs through ``asyncio.to_thread``; an ``asyncio.Lock`` keeps
    concurrent turns from interleaving partial lines.
    """

    def __init__(self, config: AuditConfig | None = None) -> None:
        self.config = config or AuditConfig()
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def log(self, event: AuditEvent) -> None:
        """Append *event* as one JSON line; raises ``OSError`` on failure."""
        if not self.config.enabled:
            return
        line = event.model_dump_json() + "\n"
        async with self._lock:
            await asyncio.to_thread(partial(self._append, self.config.file_path, line))

    async def emit(self, event_type: AuditEventType, **payload: Any) -> None:
        """Best-effort variant of :meth:`log` used from the request path.

        A failed write is logged and does not fail the turn.
        """
        try:
            await self.log(AuditEvent(event_type=event_type, payload=payload))
        except OSError:
            logger.exception(
                "audit write failed event_type=%s path=%s",
                event_type.value,
                self.config.file_path,
            )

    @staticmethod
    def _append(path: str, line: str) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("a", encoding="utf-8") as fh:
            fh.write(line)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def read_events(
        self,
        *,
        event_type: AuditEventType | None = None,
        since: float | None = None,
    ) -> list[AuditEvent]:
        """Read events back in write order, optionally filtered."""
        path = Path(self.config.file_path)
        if not path.exists():
            return []

        async with self._lock:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        events: list[AuditEvent] = []
        for line_no, line in enumerate(raw.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                evt = AuditEvent.model_validate_json(line)
            except ValidationError:
                logger.warning("skipping malformed audit line=%d path=%s", line_no, path)
                continue
            if event_type is not None and evt.event_type != event_type:
                continue
            if since is not None and evt.timestamp < since:
                continue
            events.append(evt)
        return events
