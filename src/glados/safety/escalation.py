"""Safety escalation and acknowledgment.

``create_alert`` always writes the compliance record first, then resolves
the team's YPP contacts, mints one single-use token per reachable contact
and hands DM delivery to the task queue. Nothing after the insert can fail
the call: notification problems are logged and the caller carries on.

``acknowledge`` is the only way a token is consumed, whichever path the
contact used (link, reaction or reply).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

from glados.logging import get_logger
from glados.queue.models import QueuePriority, QueueTask, QueueTaskType, TaskQueue
from glados.roles import can_be_ypp_contact, require_elevated_role
from glados.safety.models import (
    AckErrorKind,
    AckMethod,
    AckResult,
    AcknowledgmentError,
    AlertAckToken,
    AlertCreated,
    AlertSeverity,
    AlertStats,
    AlertStatus,
    AlertType,
    InvalidStatusTransitionError,
    SafetyAlert,
)
from glados.safety.notifications import AlertDM
from glados.safety.storage import SafetyStore
from glados.teamdata.models import Member
from glados.teamdata.storage import TeamDataStore

log = get_logger("glados.safety.escalation")

DEFAULT_CONTACT_NAME = "Mentor"


def mint_ack_token(alert_id: str, now: datetime | None = None) -> str:
    """Build an unguessable token string bound to *alert_id*."""
    now = now or datetime.now(UTC)
    return f"alert-{alert_id}-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex}"


class SafetyEscalation:
    """Create alerts, notify YPP contacts and process acknowledgments."""

    def __init__(
        self,
        store: SafetyStore,
        team_data: TeamDataStore,
        queue: TaskQueue,
        *,
        token_ttl_days: int = 7,
    ) -> None:
        self._store = store
        self._team_data = team_data
        self._queue = queue
        self._token_ttl = timedelta(days=token_ttl_days)

    # ------------------------------------------------------------------
    # Alert creation
    # ------------------------------------------------------------------

    async def create_alert(
        self,
        *,
        team_id: str,
        user_id: str,
        channel_id: str | None,
        severity: AlertSeverity,
        reason: str,
        content: str,
        alert_type: AlertType = AlertType.ESCALATION,
    ) -> AlertCreated:
        """Persist an alert and schedule DMs to the team's YPP contacts."""
        alert = await self._store.insert_alert(
            SafetyAlert(
                id=str(uuid.uuid4()),
                team_id=team_id,
                user_id=user_id,
                channel_id=channel_id,
                alert_type=alert_type,
                severity=severity,
                trigger_reason=reason,
                message_content=content,
            )
        )
        log.info(
            "safety_alert_created",
            alert_id=alert.id,
            team_id=team_id,
            severity=severity.value,
            alert_type=alert_type.value,
        )

        try:
            notified = await self._notify_contacts(alert)
        except Exception:
            log.exception("safety_alert_notification_failed", alert_id=alert.id)
            notified = 0
        return AlertCreated(alert_id=alert.id, notified_count=notified)

    async def _notify_contacts(self, alert: SafetyAlert) -> int:
        team = await self._team_data.get_team(alert.team_id)
        if team is None:
            log.warning("safety_alert_team_missing", alert_id=alert.id, team_id=alert.team_id)
            return 0

        contacts = await self._team_data.list_ypp_contacts(alert.team_id)
        eligible = [m for m in contacts if can_be_ypp_contact(m.role, m.birthdate)]
        if not eligible:
            log.warning("no_ypp_contacts_configured", alert_id=alert.id, team_id=alert.team_id)
            return 0

        reachable = [m for m in eligible if m.discord_user_id]
        if not reachable:
            log.warning(
                "no_ypp_contacts_reachable",
                alert_id=alert.id,
                team_id=alert.team_id,
                contact_count=len(eligible),
            )
            return 0

        notified = 0
        for contact in reachable:
            if await self._schedule_dm(alert, contact, team.number):
                notified += 1
        return notified

    async def _schedule_dm(self, alert: SafetyAlert, contact: Member, team_number: str) -> bool:
        now = datetime.now(UTC)
        token = AlertAckToken(
            token=mint_ack_token(alert.id, now),
            alert_id=alert.id,
            contact_member_id=contact.id,
            contact_discord_id=contact.discord_user_id,
            expires_at=now + self._token_ttl,
        )
        try:
            await self._store.insert_token(token)
            await self._queue.enqueue(
                QueueTask(
                    task_type=QueueTaskType.SAFETY_ALERT_DM,
                    payload=AlertDM(
                        alert_id=alert.id,
                        token=token.token,
                        team_number=team_number,
                        contact_name=contact.name or DEFAULT_CONTACT_NAME,
                        contact_discord_id=contact.discord_user_id or "",
                        severity=alert.severity,
                        reason=alert.trigger_reason,
                    ).to_payload(),
                    user_id=contact.discord_user_id or "",
                    priority=QueuePriority.NEAR_INTERACTIVE,
                    correlation_id=alert.id,
                )
            )
        except Exception:
            log.exception(
                "alert_dm_schedule_failed", alert_id=alert.id, contact_member_id=contact.id
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Acknowledgment
    # ------------------------------------------------------------------

    async def acknowledge(
        self,
        token: str,
        *,
        method: AckMethod = AckMethod.LINK,
        acknowledged_by: str | None = None,
    ) -> AckResult:
        """Consume *token* and mark its alert acknowledged.

        Raises:
            AcknowledgmentError: ``invalid_token``, ``expired_token``,
                ``already_used`` or ``alert_not_found``, checked in that order.
        """
        now = datetime.now(UTC)
        record = await self._store.get_token(token)
        if record is None:
            raise AcknowledgmentError(AckErrorKind.INVALID_TOKEN)
        if record.is_expired(now):
            raise AcknowledgmentError(AckErrorKind.EXPIRED_TOKEN)
        if record.used_at is not None:
            raise AcknowledgmentError(AckErrorKind.ALREADY_USED)

        alert = await self._store.get_alert(record.alert_id)
        if alert is None:
            raise AcknowledgmentError(AckErrorKind.ALERT_NOT_FOUND)

        acknowledged_by = acknowledged_by or record.contact_member_id
        if not await self._store.consume_token(token, used_by=acknowledged_by, now=now):
            # Lost the race against a concurrent acknowledgment.
            raise AcknowledgmentError(AckErrorKind.ALREADY_USED)

        await self._store.record_acknowledgment(
            alert.id, method=method, acknowledged_by=acknowledged_by, acknowledged_at=now
        )
        log.info(
            "safety_alert_acknowledged",
            alert_id=alert.id,
            team_id=alert.team_id,
            method=method.value,
        )
        return AckResult(team_id=alert.team_id, alert_id=alert.id)

    async def acknowledge_delivery(
        self,
        message_id: str,
        *,
        method: AckMethod,
        acknowledged_by: str | None = None,
    ) -> AckResult | None:
        """Acknowledge via a reaction or reply on a delivered alert DM.

        Returns ``None`` when *message_id* is not an alert DM.
        """
        record = await self._store.get_token_by_message(message_id)
        if record is None:
            return None
        return await self.acknowledge(
            record.token, method=method, acknowledged_by=acknowledged_by
        )

    # ------------------------------------------------------------------
    # Review surfaces (mentor roles only)
    # ------------------------------------------------------------------

    async def list_alerts(
        self,
        team_id: str,
        *,
        viewer_role: str | None,
        status: AlertStatus | None = None,
        limit: int = 50,
    ) -> list[SafetyAlert]:
        require_elevated_role(viewer_role, "listing safety alerts")
        return await self._store.list_alerts(team_id, status=status, limit=limit)

    async def get_alert(self, alert_id: str, *, viewer_role: str | None) -> SafetyAlert | None:
        require_elevated_role(viewer_role, "viewing a safety alert")
        return await self._store.get_alert(alert_id)

    async def pending_count(self, team_id: str, *, viewer_role: str | None) -> int:
        require_elevated_role(viewer_role, "counting safety alerts")
        return await self._store.count_alerts(team_id, AlertStatus.PENDING)

    async def get_stats(self, team_id: str, *, viewer_role: str | None) -> AlertStats:
        require_elevated_role(viewer_role, "viewing safety alert stats")
        return await self._store.get_stats(team_id)

    async def mark_reviewed(
        self, alert_id: str, *, reviewer_id: str, viewer_role: str | None
    ) -> SafetyAlert:
        require_elevated_role(viewer_role, "reviewing a safety alert")
        return await self._advance(alert_id, AlertStatus.REVIEWED, reviewed_by=reviewer_id)

    async def resolve(
        self,
        alert_id: str,
        *,
        reviewer_id: str,
        viewer_role: str | None,
        notes: str | None = None,
    ) -> SafetyAlert:
        require_elevated_role(viewer_role, "resolving a safety alert")
        return await self._advance(
            alert_id, AlertStatus.RESOLVED, reviewed_by=reviewer_id, notes=notes
        )

    async def _advance(
        self,
        alert_id: str,
        status: AlertStatus,
        *,
        reviewed_by: str,
        notes: str | None = None,
    ) -> SafetyAlert:
        updated = await self._store.advance_status(
            alert_id, status, reviewed_by=reviewed_by, resolution_notes=notes
        )
        if updated is not None:
            log.info("safety_alert_status_changed", alert_id=alert_id, status=status.value)
            return updated

        current = await self._store.get_alert(alert_id)
        if current is None:
            raise AcknowledgmentError(AckErrorKind.ALERT_NOT_FOUND)
        raise InvalidStatusTransitionError(
            f"alert {alert_id} is {current.status.value}; cannot move to {status.value}"
        )

    # ------------------------------------------------------------------
    # Re-escalation
    # ------------------------------------------------------------------

    async def unacknowledged_alerts(self, threshold: timedelta) -> list[SafetyAlert]:
        """Pending alerts older than *threshold* with no acknowledgment."""
        return await self._store.list_unacknowledged(datetime.now(UTC) - threshold)

    async def escalate(self, alert_id: str) -> int | None:
        """Record one more escalation round; returns the new count, or None if
        the alert does not exist."""
        return await self._store.increment_escalation(alert_id)

    async def escalate_unacknowledged(self, threshold: timedelta) -> int:
        alerts = await self.unacknowledged_alerts(threshold)
        for alert in alerts:
            count = await self.escalate(alert.id)
            log.warning(
                "safety_alert_unacknowledged",
                alert_id=alert.id,
                team_id=alert.team_id,
                severity=alert.severity.value,
                escalation_count=count,
            )
        return len(alerts)
