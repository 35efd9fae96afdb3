"""Data models for safety alerts and acknowledgment tokens."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class AlertSeverity(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertType(StrEnum):
    ESCALATION = "escalation"
    CRISIS = "crisis"
    REVIEW = "review"


class AlertStatus(StrEnum):
    """Review lifecycle. Transitions only move forward."""

    PENDING = "pending"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"


STATUS_ORDER: dict[AlertStatus, int] = {
    AlertStatus.PENDING: 0,
    AlertStatus.REVIEWED: 1,
    AlertStatus.RESOLVED: 2,
}


class AckMethod(StrEnum):
    LINK = "link"
    EMOJI = "emoji"
    REPLY = "reply"


class AckErrorKind(StrEnum):
    INVALID_TOKEN = "invalid_token"  # nosec B105
    EXPIRED_TOKEN = "expired_token"  # nosec B105
    ALREADY_USED = "already_used"
    ALERT_NOT_FOUND = "alert_not_found"


class AcknowledgmentError(Exception):
    """An acknowledgment attempt was refused."""

    def __init__(self, kind: AckErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind


class InvalidStatusTransitionError(Exception):
    """An alert status change would move backwards."""


@dataclass
class SafetyAlert:
    """Durable compliance record of a safety concern. Never deleted."""

    id: str
    team_id: str
    user_id: str
    channel_id: str | None
    alert_type: AlertType
    severity: AlertSeverity
    trigger_reason: str
    message_content: str
    status: AlertStatus = AlertStatus.PENDING
    created_at: datetime | None = None
    ack_method: AckMethod | None = None
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    resolution_notes: str | None = None
    escalation_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serialisable dictionary."""
        return {
            "id": self.id,
            "team_id": self.team_id,
            "user_id": self.user_id,
            "channel_id": self.channel_id,
            "alert_type": self.alert_type.value,
            "severity": self.severity.value,
            "trigger_reason": self.trigger_reason,
            "message_content": self.message_content,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "ack_method": self.ack_method.value if self.ack_method else None,
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "acknowledged_by": self.acknowledged_by,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "resolution_notes": self.resolution_notes,
            "escalation_count": self.escalation_count,
        }


@dataclass
class AlertAckToken:
    """Single-use, time-boxed credential binding one alert to one contact."""

    token: str
    alert_id: str
    contact_member_id: str
    contact_discord_id: str | None
    expires_at: datetime
    used_at: datetime | None = None
    used_by: str | None = None
    delivered_message_id: str | None = None
    delivered_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class AlertCreated:
    alert_id: str
    notified_count: int


@dataclass(frozen=True)
class AckResult:
    team_id: str
    alert_id: str


@dataclass
class AlertStats:
    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_severity: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)
