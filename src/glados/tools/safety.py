"""Mentor escalation tool.

The model calls this when it notices a safety concern the pre-screen did
not catch. Failure to alert is reported back to the model, never raised.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from glados.logging import get_logger
from glados.safety.escalation import SafetyEscalation
from glados.safety.models import AlertSeverity
from glados.tools.base import (
    ToolContext,
    ToolExecutionError,
    ToolExecutor,
    ToolNamespace,
    ToolSpec,
)

log = get_logger("glados.tools.safety")

ALERT_SENT_MESSAGE = "YPP contacts have been notified privately."
ALERT_FAILED_MESSAGE = "Unable to send alert, but concern has been logged."

_DESCRIPTION = """\
Alert the team's YPP (Youth Protection) contacts about a concerning interaction.
Use this tool when you observe:
- Signs of emotional distress or crisis
- Mentions of self-harm or harm to others
- Bullying or harassment reports
- Inappropriate requests or boundary violations
- Anything that makes you uncertain about safety

The alert is sent privately to designated mentors.
Do NOT include crisis hotlines or resources in your response to the user."""


class AlertMentorInput(BaseModel):
    severity: AlertSeverity = Field(description="The severity level of the concern")
    reason: str = Field(
        min_length=1, description="Brief description of what triggered the alert"
    )
    context: str = Field(
        default="", description="Additional context that might help mentors respond"
    )


class SafetyExecutor(ToolExecutor):
    namespace = ToolNamespace.SAFETY

    def __init__(self, escalation: SafetyEscalation) -> None:
        self._escalation = escalation

    @property
    def specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(
                name="safety_alert_mentor",
                description=_DESCRIPTION,
                namespace=self.namespace,
                input_model=AlertMentorInput,
            )
        ]

    async def execute(self, name: str, params: BaseModel, context: ToolContext) -> dict[str, Any]:
        match params:
            case AlertMentorInput(severity=severity, reason=reason, context=details):
                try:
                    created = await self._escalation.create_alert(
                        team_id=context.team_id,
                        user_id=context.user_id,
                        channel_id=context.channel_id,
                        severity=severity,
                        reason=reason,
                        content=details,
                    )
                except Exception:
                    log.exception(
                        "safety_tool_alert_failed", team_id=context.team_id, severity=severity
                    )
                    return {"success": False, "message": ALERT_FAILED_MESSAGE}
                return {
                    "success": True,
                    "message": ALERT_SENT_MESSAGE,
                    "alert_id": created.alert_id,
                }
        raise ToolExecutionError(f"Unknown safety tool: {name}")
