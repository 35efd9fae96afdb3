"""Safety escalation: alerts, YPP contact notification and acknowledgment."""

from glados.safety.escalation import SafetyEscalation
from glados.safety.models import (
    AckErrorKind,
    AckMethod,
    AckResult,
    AcknowledgmentError,
    AlertCreated,
    AlertSeverity,
    AlertStatus,
    AlertType,
    InvalidStatusTransitionError,
    SafetyAlert,
)
from glados.safety.notifications import AlertDM, AlertNotifier
from glados.safety.storage import SafetyStore

__all__ = [
    "AckErrorKind",
    "AckMethod",
    "AckResult",
    "AcknowledgmentError",
    "AlertCreated",
    "AlertDM",
    "AlertNotifier",
    "AlertSeverity",
    "AlertStatus",
    "AlertType",
    "InvalidStatusTransitionError",
    "SafetyAlert",
    "SafetyEscalation",
    "SafetyStore",
]
