"""Audit subsystem: structured turn events written as JSONL."""

from cuidado.audit.schemas import AuditEvent
from cuidado.audit.schemas import AuditEventType
from cuidado.audit.store import AuditLogger

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
]
