"""Structured audit log entry types."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MessageType(StrEnum):
    AGENT_RESPONSE = "agent_response"
    BLOCKED = "blocked"


class ToolCallRecord(BaseModel):
    """One completed tool invocation: exactly one of ``output`` or ``error``."""

    model_config = ConfigDict(frozen=True)

    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    output: Any | None = None
    error: str | None = None

    @model_validator(mode="after")
    def validate_outcome(self) -> Self:
        """Reject records with both or neither of output and error."""
        if (self.output is None) == (self.error is None):
            raise ValueError("a tool call record needs exactly one of output or error")
        return self

    @property
    def failed(self) -> bool:
        return self.error is not None


class AuditLogEntry(BaseModel):
    """Append-only record of one handled message."""

    model_config = ConfigDict(frozen=True)

    team_id: str
    user_id: str
    channel_id: str | None = None
    user_message: str
    agent_response: str
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    contains_safety_alert: bool = False
    message_type: MessageType = MessageType.AGENT_RESPONSE
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class StoredAuditLogEntry(AuditLogEntry):
    """An entry read back from storage."""

    id: int


class AuditCounts(BaseModel):
    total: int = 0
    with_safety_alerts: int = 0
    unique_users: int = 0
