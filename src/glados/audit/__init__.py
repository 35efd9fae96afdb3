"""Append-only audit trail of agent interactions."""

from glados.audit.log import AuditLog
from glados.audit.models import (
    AuditCounts,
    AuditLogEntry,
    MessageType,
    StoredAuditLogEntry,
    ToolCallRecord,
)

__all__ = [
    "AuditCounts",
    "AuditLog",
    "AuditLogEntry",
    "MessageType",
    "StoredAuditLogEntry",
    "ToolCallRecord",
]
